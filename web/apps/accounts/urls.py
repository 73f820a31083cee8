from django.urls import path
from .views import SshKeyDetailView, SshKeysCollectionView

app_name = "accounts"

urlpatterns = [
    path("", SshKeysCollectionView.as_view(), name="ssh-keys-collection"),
    path("<uuid:kid>/", SshKeyDetailView.as_view(), name="ssh-keys-detail"),
]
