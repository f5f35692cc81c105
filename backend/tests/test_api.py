"""
HTTP API tests: admin gate, JSON envelope and the main inventory flows.

Responses are checked through their JSON; service-level behaviour is covered
by the service test modules.
"""

import pytest


class TestHealth:

    def test_health_is_public(self, client, db_session):
        response = client.get('/api/health')

        assert response.status_code == 200
        body = response.get_json()
        assert body["ok"] is True
        assert body["data"]["status"] == "healthy"
        assert body["data"]["checks"]["database"]["details"]["products"] == 0


class TestAdminGate:

    @pytest.mark.parametrize("path", [
        '/api/admin/products',
        '/api/admin/inventory',
        '/api/admin/storage-locations',
        '/api/admin/purchase-orders',
        '/api/admin/finance/summary',
    ])
    def test_missing_token(self, client, db_session, path):
        response = client.get(path)

        assert response.status_code == 401
        assert response.get_json() == {"ok": False, "error": "Authentication required"}

    def test_wrong_token(self, client, db_session):
        response = client.get('/api/admin/products', headers={'Authorization': 'Bearer nope'})

        assert response.status_code == 401
        assert response.get_json()["error"] == "Invalid admin token"

    def test_unconfigured_token_rejects_everything(self, app, client, db_session):
        app.config['ADMIN_API_TOKEN'] = None
        try:
            response = client.get('/api/admin/products', headers={'Authorization': 'Bearer anything'})
        finally:
            app.config['ADMIN_API_TOKEN'] = 'test-admin-token'

        assert response.status_code == 401


class TestProductsApi:

    def test_create_and_list(self, client, db_session, admin_headers, supplier):
        response = client.post('/api/admin/products', headers=admin_headers, json={
            "name": "Sinandomeng",
            "category": "Rice",
            "priceCents": 4800,
            "isMilledRice": False,
            "millingYieldRate": "65.5",
            "supplierId": supplier.id,
        })

        assert response.status_code == 201
        created = response.get_json()["data"]
        assert created["milling_yield_rate"] == "65.50"
        assert created["stock_on_hand"] == 0

        listed = client.get('/api/admin/products?milled=false', headers=admin_headers).get_json()["data"]
        assert [p["name"] for p in listed] == ["Sinandomeng"]

    def test_stock_fields_are_not_writable(self, client, db_session, admin_headers, palay):
        response = client.put(
            f'/api/admin/products/{palay.id}', headers=admin_headers, json={"stock_on_hand": 500},
        )

        assert response.status_code == 400
        assert response.get_json()["ok"] is False

    def test_unknown_product_is_404(self, client, db_session, admin_headers):
        response = client.get('/api/admin/products/999', headers=admin_headers)

        assert response.status_code == 404

    def test_price_change_records_history(self, client, db_session, admin_headers, palay):
        url = f'/api/admin/products/{palay.id}'
        changed = client.put(url, headers=admin_headers, json={
            "priceCents": 5000, "priceChangeReason": "Dry season shortage",
        })
        assert changed.status_code == 200
        assert changed.get_json()["data"]["price_cents"] == 5000

        client.put(url, headers=admin_headers, json={"description": "Premium"})
        client.put(url, headers=admin_headers, json={"priceCents": 5000})
        client.put(url, headers=admin_headers, json={"priceCents": 4700})

        history = client.get(f'{url}/price-history', headers=admin_headers).get_json()["data"]
        assert [(h["old_price_cents"], h["new_price_cents"]) for h in history] == [(5000, 4700), (4500, 5000)]
        assert history[1]["reason"] == "Dry season shortage"
        assert history[1]["changed_by"] == "tester"
        assert history[0]["reason"] == "Price updated"

    def test_price_history_unknown_product_is_404(self, client, db_session, admin_headers):
        response = client.get('/api/admin/products/999/price-history', headers=admin_headers)

        assert response.status_code == 404


class TestInventoryApi:

    def test_assign_records_actor(self, client, db_session, admin_headers, palay, warehouse):
        response = client.post('/api/admin/inventory', headers=admin_headers, json={
            "productId": palay.id, "locationId": warehouse.id, "quantity": 25, "notes": "Opening stock",
        })

        assert response.status_code == 201
        tx = response.get_json()["data"]["transactions"][0]
        assert tx["kind"] == "STOCK_IN"
        assert tx["quantity"] == 25
        assert tx["created_by"] == "tester"
        assert tx["note"] == "Opening stock"

    def test_legacy_category_key_and_default_actor(self, client, db_session, palay, warehouse):
        headers = {'Authorization': 'Bearer test-admin-token'}
        response = client.post('/api/admin/inventory', headers=headers, json={
            "categoryId": palay.id, "location_id": warehouse.id, "quantity": "3",
        })

        assert response.status_code == 201
        assert response.get_json()["data"]["transactions"][0]["created_by"] == "admin"

    def test_transfer(self, client, db_session, admin_headers, palay, warehouse, annex, put_stock):
        put_stock(palay, warehouse, 10)

        response = client.post('/api/admin/inventory', headers=admin_headers, json={
            "productId": palay.id,
            "sourceLocationId": warehouse.id,
            "targetLocationId": annex.id,
            "quantity": 10,
            "isTransfer": True,
        })

        assert response.status_code == 201
        kinds = [(t["kind"], t["location_id"]) for t in response.get_json()["data"]["transactions"]]
        assert kinds == [("STOCK_OUT", warehouse.id), ("STOCK_IN", annex.id)]

        rows = client.get(f'/api/admin/inventory?product_id={palay.id}', headers=admin_headers).get_json()["data"]
        assert [(r["location_id"], r["quantity"]) for r in rows] == [(annex.id, 10)]

    def test_insufficient_stock_payload(self, client, db_session, admin_headers, palay, warehouse, annex, put_stock):
        put_stock(palay, warehouse, 4)

        response = client.post('/api/admin/inventory', headers=admin_headers, json={
            "productId": palay.id,
            "sourceLocationId": warehouse.id,
            "targetLocationId": annex.id,
            "quantity": 5,
            "isTransfer": True,
        })

        assert response.status_code == 409
        body = response.get_json()
        assert body["ok"] is False
        assert (body["product"], body["available"], body["requested"]) == ("Dinorado", 4, 5)

    @pytest.mark.parametrize("quantity", [0, -3, 1.5, "1e3", True])
    def test_bad_quantity_is_400(self, client, db_session, admin_headers, palay, warehouse, quantity):
        response = client.post('/api/admin/inventory', headers=admin_headers, json={
            "productId": palay.id, "locationId": warehouse.id, "quantity": quantity,
        })

        assert response.status_code == 400

    def test_adjust(self, client, db_session, admin_headers, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 10)

        response = client.post('/api/admin/inventory/adjust', headers=admin_headers, json={
            "productId": palay.id,
            "locationId": warehouse.id,
            "adjustmentType": "SET",
            "quantity": 8,
            "reason": "Cycle count",
        })

        assert response.status_code == 200
        data = response.get_json()["data"]
        assert (data["previous_quantity"], data["new_quantity"]) == (10, 8)
        assert data["transaction"]["kind"] == "STOCK_OUT"

    def test_mill_rice(self, client, db_session, admin_headers, palay, warehouse, mill_floor, put_stock):
        put_stock(palay, warehouse, 100)

        response = client.post('/api/admin/inventory/mill-rice', headers=admin_headers, json={
            "sourceCategoryId": palay.id,
            "sourceLocationId": warehouse.id,
            "targetLocationId": mill_floor.id,
            "quantity": 100,
        })

        assert response.status_code == 201
        data = response.get_json()["data"]
        assert data["output_quantity"] == 66
        assert data["milled_product"]["name"] == "Milled Dinorado"
        assert data["yield_rate"] == "66.67"

    def test_reconcile_report(self, client, db_session, admin_headers, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 2)

        response = client.get('/api/admin/inventory/reconcile', headers=admin_headers)

        assert response.status_code == 200
        assert response.get_json()["data"]["drifted"] == []


class TestLocationsApi:

    def test_create_uppercases_code(self, client, db_session, admin_headers):
        response = client.post('/api/admin/storage-locations', headers=admin_headers, json={
            "name": "Silo 1", "code": "silo1", "type": "zone",
        })

        assert response.status_code == 201
        data = response.get_json()["data"]
        assert (data["code"], data["type"]) == ("SILO1", "ZONE")

    def test_delete_stocked_location_conflicts(self, client, db_session, admin_headers, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 1)

        response = client.delete(f'/api/admin/storage-locations/{warehouse.id}', headers=admin_headers)

        assert response.status_code == 409

    def test_detail_includes_stock(self, client, db_session, admin_headers, palay, warehouse, put_stock):
        put_stock(palay, warehouse, 9)

        data = client.get(f'/api/admin/storage-locations/{warehouse.id}', headers=admin_headers).get_json()["data"]

        assert data["total_quantity"] == 9
        assert data["inventory"][0]["product_name"] == "Dinorado"


class TestPurchasingApi:

    def test_receive_flow(self, client, db_session, admin_headers, supplier, palay, warehouse):
        created = client.post('/api/admin/purchase-orders', headers=admin_headers, json={
            "supplierId": supplier.id,
            "items": [{"productId": palay.id, "quantity": 100, "price": 4000}],
        })
        assert created.status_code == 201
        po = created.get_json()["data"]
        assert po["created_by"] == "tester"
        line_id = po["items"][0]["id"]

        received = client.post(f'/api/admin/purchase-orders/{po["id"]}/receive', headers=admin_headers, json={
            "lines": [{"purchaseOrderItemId": line_id, "locationId": warehouse.id, "receivedNow": 40}],
        })
        assert received.status_code == 200
        data = received.get_json()["data"]
        assert data["purchase_order"]["status"] == "Partial"
        assert data["lines"][0]["backorders"][0]["quantity"] == 60

        detail = client.get(f'/api/admin/purchase-orders/{po["id"]}', headers=admin_headers).get_json()["data"]
        assert detail["payment"]["payment_status"] == "UNPAID"
        assert [b["status"] for b in detail["backorders"]] == ["Open"]

        backorder_id = detail["backorders"][0]["id"]
        reminded = client.patch(f'/api/admin/backorders/{backorder_id}/remind', headers=admin_headers, json={})
        assert reminded.get_json()["data"]["status"] == "Reminded"

    def test_return_without_stock_is_409(self, client, db_session, admin_headers, supplier, palay, warehouse):
        po = client.post('/api/admin/purchase-orders', headers=admin_headers, json={
            "supplierId": supplier.id,
            "items": [{"productId": palay.id, "quantity": 10, "priceCents": 100}],
        }).get_json()["data"]
        line_id = po["items"][0]["id"]
        client.post(f'/api/admin/purchase-orders/{po["id"]}/receive', headers=admin_headers, json={
            "lines": [{"purchaseOrderItemId": line_id, "locationId": warehouse.id, "receivedNow": 10}],
        })
        client.post('/api/admin/inventory/adjust', headers=admin_headers, json={
            "productId": palay.id, "locationId": warehouse.id, "adjustmentType": "SET",
            "quantity": 0, "reason": "Sold off the books",
        })

        response = client.post(f'/api/admin/purchase-orders/{po["id"]}/returns', headers=admin_headers, json={
            "reason": "Moldy",
            "items": [{"purchaseOrderItemId": line_id, "quantity": 5}],
        })

        assert response.status_code == 409
        assert response.get_json()["requested"] == 5

    def test_line_transactions_newest_first(self, client, db_session, admin_headers, supplier, palay, warehouse):
        po = client.post('/api/admin/purchase-orders', headers=admin_headers, json={
            "supplierId": supplier.id,
            "items": [{"productId": palay.id, "quantity": 10, "priceCents": 100}],
        }).get_json()["data"]
        line_id = po["items"][0]["id"]
        client.post(f'/api/admin/purchase-orders/{po["id"]}/receive', headers=admin_headers, json={
            "lines": [{"purchaseOrderItemId": line_id, "locationId": warehouse.id, "receivedNow": 10}],
        })
        returned = client.post(f'/api/admin/purchase-orders/{po["id"]}/returns', headers=admin_headers, json={
            "reason": "Moldy",
            "items": [{"purchaseOrderItemId": line_id, "quantity": 4}],
        })
        assert returned.status_code == 201

        response = client.get(f'/api/admin/purchase-orders/items/{line_id}/transactions', headers=admin_headers)

        assert response.status_code == 200
        rows = response.get_json()["data"]
        assert [(r["kind"], r["quantity"]) for r in rows] == [("RETURN_OUT", 4), ("STOCK_IN", 10)]
        assert all(r["purchase_order_item_id"] == line_id for r in rows)
        assert all(r["location_id"] == warehouse.id for r in rows)

    def test_unknown_line_transactions_is_404(self, client, db_session, admin_headers):
        response = client.get('/api/admin/purchase-orders/items/999/transactions', headers=admin_headers)

        assert response.status_code == 404


class TestOrdersApi:

    def test_order_ship_fulfill(self, client, db_session, admin_headers, rice, warehouse, put_stock):
        put_stock(rice, warehouse, 5)

        order = client.post('/api/admin/orders', headers=admin_headers, json={
            "customerName": "Mang Jose", "items": [{"productId": rice.id, "quantity": 3}],
        }).get_json()["data"]
        delivery_id = order["deliveries"][0]["id"]

        early = client.post(f'/api/admin/orders/{order["id"]}/fulfill', headers=admin_headers,
                            json={"deliveryId": delivery_id})
        assert early.status_code == 409

        shipped = client.patch(f'/api/admin/orders/{order["id"]}/delivery-shipment', headers=admin_headers,
                               json={"deliveryId": delivery_id, "shipmentStatus": "Delivered"})
        assert shipped.status_code == 200

        done = client.post(f'/api/admin/orders/{order["id"]}/fulfill', headers=admin_headers,
                           json={"deliveryId": delivery_id})
        assert done.status_code == 200
        data = done.get_json()["data"]
        assert data["status"] == "completed"
        assert data["deliveries"][0]["fulfilled_by"] == "tester"

    def test_fulfill_needs_delivery_or_items(self, client, db_session, admin_headers, rice):
        order = client.post('/api/admin/orders', headers=admin_headers, json={
            "customerName": "Mang Jose", "items": [{"productId": rice.id, "quantity": 1}],
        }).get_json()["data"]

        response = client.post(f'/api/admin/orders/{order["id"]}/fulfill', headers=admin_headers, json={})

        assert response.status_code == 400


class TestFinanceApi:

    def test_deposit_and_pay(self, client, db_session, admin_headers, supplier, palay):
        po = client.post('/api/admin/purchase-orders', headers=admin_headers, json={
            "supplierId": supplier.id,
            "items": [{"productId": palay.id, "quantity": 2, "priceCents": 5000}],
        }).get_json()["data"]

        short = client.post('/api/admin/finance/pay', headers=admin_headers,
                            json={"purchaseOrderId": po["id"], "amount": 10_000})
        assert short.status_code == 409

        deposit = client.post('/api/admin/finance/deposit', headers=admin_headers, json={"amount": 10_000})
        assert deposit.status_code == 201

        paid = client.post('/api/admin/finance/pay', headers=admin_headers,
                           json={"purchaseOrderId": po["id"], "amount": 10_000})
        assert paid.status_code == 200
        assert paid.get_json()["data"]["payment_status"] == "PAID"

        summary = client.get('/api/admin/finance/summary', headers=admin_headers).get_json()["data"]
        assert summary["account_balance_cents"] == 0
        assert summary["total_payables_cents"] == 0
