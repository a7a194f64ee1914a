from django.test import SimpleTestCase, override_settings


@override_settings(DEBUG=False)
class ErrorHandlerTests(SimpleTestCase):
    def test_unknown_route_returns_json_404(self):
        response = self.client.get('/this-url-does-not-exist/')
        self.assertEqual(response.status_code, 404)
        body = response.json()
        self.assertFalse(body['success'])
        self.assertEqual(body['error']['code'], 'NOT_FOUND')

    def test_encoding_error_rendered_by_middleware(self):
        response = self.client.get('/api/barcode/generate/A~B')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error']['code'], 'INVALID_TEXT')
        self.assertEqual(len(response.json()['error']['details']), 1)
