import pytest
import requests
from unittest.mock import Mock, patch
import sys
import os
import threading

# Add scripts directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'scripts'))

from vcd_client import VCloudSession, TransportError, EntityHandle, snippet
from vcd_snapshot import SnapshotRequest


def make_request(method='GET', body=None):
    return SnapshotRequest(method, 'https://vcd.example.com/api/vApp/vm-1/snapshotSection',
                           {'Accept': 'application/*+xml;version=5.1'}, body)


class TestVCloudSession:

    @patch('vcd_client.requests.Session')
    def test_init(self, mock_session_class):
        session = VCloudSession('vcd.example.com', 'token123')

        assert session.host == 'vcd.example.com'
        assert session.token == 'token123'
        assert session.base_url == 'https://vcd.example.com/api'
        assert session.api_version == '5.1'
        assert session.http is mock_session_class.return_value

    @patch('vcd_client.requests.Session')
    def test_send_success(self, mock_session_class):
        mock_session = Mock()
        mock_session_class.return_value = mock_session
        mock_response = Mock()
        mock_response.status_code = 200
        mock_response.content = b'<SnapshotSection/>'
        mock_response.raise_for_status.return_value = None
        mock_session.request.return_value = mock_response

        session = VCloudSession('vcd.example.com', 'token123', verify_ssl=False, timeout=10)
        request = make_request()
        body = session.send(request)

        assert body == b'<SnapshotSection/>'
        mock_session.request.assert_called_with(
            'GET', request.url, headers=request.headers, data=None, verify=False, timeout=10)
        mock_response.close.assert_called_once()

    @patch('vcd_client.requests.Session')
    def test_send_http_error(self, mock_session_class):
        mock_session = Mock()
        mock_session_class.return_value = mock_session
        mock_response = Mock()
        mock_response.status_code = 403
        mock_response.text = 'Forbidden'
        mock_response.raise_for_status.side_effect = requests.exceptions.HTTPError(response=mock_response)
        mock_session.request.return_value = mock_response

        session = VCloudSession('vcd.example.com', 'token123')

        with pytest.raises(TransportError, match="HTTP 403: Forbidden") as exc_info:
            session.send(make_request('POST'))

        assert exc_info.value.status_code == 403
        assert exc_info.value.response_body == 'Forbidden'
        mock_response.close.assert_called_once()

    @patch('vcd_client.requests.Session')
    def test_send_unfollowed_redirect(self, mock_session_class):
        mock_session = Mock()
        mock_session_class.return_value = mock_session
        mock_response = Mock()
        mock_response.status_code = 302
        mock_response.text = ''
        mock_response.raise_for_status.return_value = None
        mock_session.request.return_value = mock_response

        session = VCloudSession('vcd.example.com', 'token123')

        with pytest.raises(TransportError, match="HTTP 302") as exc_info:
            session.send(make_request('POST'))

        assert exc_info.value.status_code == 302
        mock_response.close.assert_called_once()

    @patch('vcd_client.requests.Session')
    def test_send_not_modified(self, mock_session_class):
        mock_session = Mock()
        mock_session_class.return_value = mock_session
        mock_response = Mock()
        mock_response.status_code = 304
        mock_response.text = ''
        mock_response.raise_for_status.return_value = None
        mock_session.request.return_value = mock_response

        session = VCloudSession('vcd.example.com', 'token123')

        with pytest.raises(TransportError) as exc_info:
            session.send(make_request())

        assert exc_info.value.status_code == 304

    @patch('vcd_client.requests.Session')
    def test_http_session_per_thread(self, mock_session_class):
        mock_session_class.side_effect = lambda: Mock()
        session = VCloudSession('vcd.example.com', 'token123')
        seen = []

        worker = threading.Thread(target=lambda: seen.append(session.http))
        worker.start()
        worker.join()

        assert session.http is session.http
        assert seen[0] is not session.http
        assert mock_session_class.call_count == 2

    @patch('vcd_client.requests.Session')
    def test_send_timeout(self, mock_session_class):
        mock_session = Mock()
        mock_session_class.return_value = mock_session
        mock_session.request.side_effect = requests.exceptions.Timeout()

        session = VCloudSession('vcd.example.com', 'token123')

        with pytest.raises(TransportError, match="Request timed out") as exc_info:
            session.send(make_request())

        assert exc_info.value.status_code is None

    @patch('vcd_client.requests.Session')
    def test_send_connection_refused(self, mock_session_class):
        mock_session = Mock()
        mock_session_class.return_value = mock_session
        mock_session.request.side_effect = requests.exceptions.ConnectionError('Connection refused')

        session = VCloudSession('vcd.example.com', 'token123')

        with pytest.raises(TransportError, match="Request failed: Connection refused"):
            session.send(make_request())

    @patch('vcd_client.requests.Session')
    def test_send_ssl_error(self, mock_session_class):
        mock_session = Mock()
        mock_session_class.return_value = mock_session
        mock_session.request.side_effect = requests.exceptions.SSLError()

        session = VCloudSession('vcd.example.com', 'token123')

        with pytest.raises(TransportError, match="SSL verification failed"):
            session.send(make_request())


class TestHelpers:

    def test_snippet_truncates(self):
        assert len(snippet('x' * 2000)) == 512

    def test_snippet_decodes_bytes(self):
        assert snippet(b'<Error/>') == '<Error/>'

    def test_snippet_none(self):
        assert snippet(None) is None

    def test_entity_handle_is_frozen(self):
        entity = EntityHandle('db1', 'https://vcd.example.com/api/vApp/vm-1')

        with pytest.raises(AttributeError):
            entity.name = 'db2'
