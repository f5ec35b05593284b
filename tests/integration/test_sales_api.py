"""
Integration tests for the /sales JSON endpoints.
"""

import pytest

from pos_app.models import Sale


def item(product_id, quantity, unit_price):
    return {'product_id': product_id, 'quantity': quantity, 'unit_price': unit_price}


class TestAuthentication:

    @pytest.mark.parametrize('method,url', [
        ('post', '/sales/evaluate'),
        ('post', '/sales'),
        ('get', '/sales'),
        ('get', '/sales/1'),
        ('get', '/sales/promotions'),
    ])
    def test_requires_login(self, client, session, method, url):
        response = getattr(client, method)(url, json={})

        assert response.status_code == 401
        assert response.get_json()['code'] == 'unauthenticated'

    def test_inactive_user_is_rejected(self, client, session, cashier):
        from pos_app.models import AppUser
        session.get(AppUser, cashier).active = False
        session.commit()
        with client.session_transaction() as sess:
            sess['user_id'] = cashier

        response = client.get('/sales')

        assert response.status_code == 401


class TestEvaluateEndpoint:

    def test_two_for_one(self, authenticated_client, catalog):
        response = authenticated_client.post('/sales/evaluate', json={
            'request_seq': 7,
            'items': [item(catalog['gelatina'], 3, 2000)],
            'custom_discount_percent': 0
        })

        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'ok'
        assert data['request_seq'] == 7
        result = data['result']
        assert result['subtotal'] == 6000
        assert result['promotion_discount'] == 2000
        assert result['tax'] == 780
        assert result['total'] == 4780
        assert result['active_promotion'] == 'two_for_one'
        assert result['lines'][0]['applied_promotion_label'] == 'Gelatina 2x1'

    def test_custom_discount(self, authenticated_client, catalog):
        response = authenticated_client.post('/sales/evaluate', json={
            'items': [item(catalog['empanada'], 1, 12000)],
            'custom_discount_percent': 5
        })

        result = response.get_json()['result']
        assert result['custom_discount'] == 600
        assert result['total'] == 12960
        assert result['active_promotion'] == 'custom'

    def test_custom_discount_below_threshold(self, authenticated_client, catalog):
        response = authenticated_client.post('/sales/evaluate', json={
            'items': [item(catalog['agua'], 1, 5000)],
            'custom_discount_percent': 5
        })

        result = response.get_json()['result']
        assert result['custom_discount'] == 0
        assert result['custom_discount_allowed'] is False
        assert result['active_promotion'] == 'none'

    def test_empty_cart(self, authenticated_client, catalog):
        response = authenticated_client.post('/sales/evaluate', json={'items': []})

        assert response.status_code == 200
        assert response.get_json()['result']['total'] == 0

    def test_evaluation_is_read_only(self, authenticated_client, catalog, session, stock_of):
        authenticated_client.post('/sales/evaluate', json={'items': [item(catalog['gelatina'], 3, 2000)]})

        assert session.query(Sale).count() == 0
        assert stock_of(catalog['gelatina']) == 10

    @pytest.mark.parametrize('body', [
        {'items': [item(1, 0, 2000)]},
        {'items': 'gelatina'},
        {'items': [], 'custom_discount_percent': 'diez'},
        {'items': [], 'request_seq': 'uno'},
    ])
    def test_invalid_payload(self, authenticated_client, catalog, body):
        response = authenticated_client.post('/sales/evaluate', json=body)

        assert response.status_code == 400
        assert response.get_json()['code'] == 'validation_error'

    def test_non_json_body(self, authenticated_client, catalog):
        response = authenticated_client.post('/sales/evaluate', data='no json', content_type='text/plain')

        assert response.status_code == 400


class TestCreateSaleEndpoint:

    def test_creates_sale(self, authenticated_client, catalog, session, stock_of):
        response = authenticated_client.post('/sales', json={
            'payment_method': 'cash',
            'cash_received': 5000,
            'items': [item(catalog['gelatina'], 3, 2000)],
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['status'] == 'ok'
        assert data['total'] == 4780
        assert data['change_amount'] == 220
        assert data['duplicate'] is False
        assert stock_of(catalog['gelatina']) == 7

    def test_client_totals_are_ignored(self, authenticated_client, catalog, session):
        response = authenticated_client.post('/sales', json={
            'payment_method': 'card',
            'items': [item(catalog['gelatina'], 3, 2000)],
            'subtotal': 1,
            'discount': 6000,
            'total': 1,
        })

        assert response.status_code == 201
        sale = session.get(Sale, response.get_json()['sale_id'])
        assert int(sale.total) == 4780
        assert int(sale.discount) == 2000

    def test_retry_with_same_key(self, authenticated_client, catalog, session):
        body = {
            'payment_method': 'card',
            'items': [item(catalog['papas'], 1, 3500)],
            'idempotency_key': 'caja1-0042',
        }

        first = authenticated_client.post('/sales', json=body)
        second = authenticated_client.post('/sales', json=body)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.get_json()['duplicate'] is True
        assert second.get_json()['sale_id'] == first.get_json()['sale_id']
        assert session.query(Sale).count() == 1

    def test_insufficient_stock(self, authenticated_client, catalog):
        response = authenticated_client.post('/sales', json={
            'payment_method': 'card',
            'items': [item(catalog['agua'], 2, 5000)],
        })

        assert response.status_code == 409
        data = response.get_json()
        assert data['code'] == 'stock_insufficient'
        assert data['product_name'] == 'Agua 500ml'

    def test_inactive_product(self, authenticated_client, catalog):
        response = authenticated_client.post('/sales', json={
            'payment_method': 'card',
            'items': [item(catalog['descontinuado'], 1, 1500)],
        })

        assert response.status_code == 409
        assert response.get_json()['code'] == 'product_unavailable'

    def test_empty_cart(self, authenticated_client, catalog):
        response = authenticated_client.post('/sales', json={'payment_method': 'card', 'items': []})

        assert response.status_code == 400


class TestSaleQueries:

    def _sell(self, client, product_id, quantity=1, price=3500):
        response = client.post('/sales', json={
            'payment_method': 'card',
            'items': [item(product_id, quantity, price)],
        })
        return response.get_json()['sale_id']

    def test_list_and_detail(self, authenticated_client, catalog):
        first = self._sell(authenticated_client, catalog['papas'])
        second = self._sell(authenticated_client, catalog['gelatina'], 2, 2000)

        listing = authenticated_client.get('/sales?limit=10').get_json()['sales']
        assert [s['id'] for s in listing] == [second, first]
        assert 'lines' not in listing[0]

        detail = authenticated_client.get(f'/sales/{second}').get_json()['sale']
        assert detail['active_promotion'] == 'two_for_one'
        assert detail['lines'][0]['line_discount'] == 2000

    def test_detail_not_found(self, authenticated_client, catalog):
        response = authenticated_client.get('/sales/999999')

        assert response.status_code == 404
        assert response.get_json()['code'] == 'not_found'

    def test_invalid_limit(self, authenticated_client, catalog):
        assert authenticated_client.get('/sales?limit=muchas').status_code == 400

    def test_active_promotions(self, authenticated_client, catalog):
        data = authenticated_client.get('/sales/promotions').get_json()

        assert len(data['promotions']) == 1
        promotion = data['promotions'][0]
        assert promotion['promotion_id'] == 'gelatina-2x1'
        assert promotion['kind'] == 'two_for_one'
        assert promotion['product_ids'] == [catalog['gelatina'], catalog['gelatina_uva']]


def test_metrics_endpoint(client, session):
    response = client.get('/metrics')

    assert response.status_code == 200
    assert b'pos_promotion_evaluations' in response.data
