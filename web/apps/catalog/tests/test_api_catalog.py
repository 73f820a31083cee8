import pytest

PRODUCTS_URL = "/api/catalog/products/"


@pytest.mark.django_db
def test_products_are_public(client, product):
    r = client.get(PRODUCTS_URL)
    assert r.status_code == 200
    body = r.json()["results"][0]
    assert body["name"] == "Cloud VPS 10"
    assert body["selling_price"] == "10.00"
    assert "base_price" not in body


@pytest.mark.django_db
def test_admin_sees_cost_fields(client, product, admin_user, as_user):
    r = client.get(PRODUCTS_URL + f"{product.id}/", **as_user(admin_user))
    assert r.json()["base_price"] == "4.50"
    assert r.json()["contabo_product_id"] == "V45"


@pytest.mark.django_db
def test_quote_endpoint(client, product):
    r = client.post(
        "/api/catalog/quote/",
        data={"product_id": str(product.id), "period_months": 12, "region": "EU"},
        content_type="application/json",
    )
    assert r.status_code == 200
    assert r.json()["total_amount"] == "99.60"
    assert r.json()["discount_percent"] == "17.00"


@pytest.mark.django_db
def test_create_product_requires_admin(client, customer, admin_user, as_user):
    payload = {"name": "Cloud VPS 30", "selling_price": "25.00", "regions": ["EU"]}
    r = client.post(PRODUCTS_URL, data=payload, content_type="application/json", **as_user(customer))
    assert r.status_code == 403

    r = client.post(PRODUCTS_URL, data=payload, content_type="application/json", **as_user(admin_user))
    assert r.status_code == 201
    assert r.json()["selling_price"] == "25.00"


@pytest.mark.django_db
def test_pricing_update_endpoint(client, product, admin_user, as_user):
    r = client.put(
        PRODUCTS_URL + f"{product.id}/pricing/",
        data={"selling_price": "12.00"},
        content_type="application/json",
        **as_user(admin_user),
    )
    assert r.status_code == 200
    rules = {x["period_months"]: x["final_price"] for x in r.json()["price_rules"]}
    assert rules == {1: "12.00", 12: "119.52"}


@pytest.mark.django_db
def test_import_endpoint(client, admin_user, as_user):
    r = client.post("/api/catalog/import/", content_type="application/json", **as_user(admin_user))
    assert r.status_code == 200
    assert r.json()["products_created"] == 2


@pytest.mark.django_db
def test_custom_quote_request(client, custom_product, customer, as_user):
    r = client.post(
        PRODUCTS_URL + f"{custom_product.id}/quote-request/",
        data={"message": "Pricing for 10 servers?"},
        content_type="application/json",
        **as_user(customer),
    )
    assert r.status_code == 202
    assert r.json() == {"sent": True}
