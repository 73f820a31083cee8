from django.urls import path
from .views import TicketCloseView, TicketDetailView, TicketReplyView, TicketsCollectionView

app_name = "support"

urlpatterns = [
    path("tickets/", TicketsCollectionView.as_view(), name="tickets-collection"),
    path("tickets/<uuid:tid>/", TicketDetailView.as_view(), name="tickets-detail"),
    path("tickets/<uuid:tid>/replies/", TicketReplyView.as_view(), name="tickets-reply"),
    path("tickets/<uuid:tid>/close/", TicketCloseView.as_view(), name="tickets-close"),
]
