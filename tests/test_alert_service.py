from unittest.mock import MagicMock, Mock, patch

import httpx

from flowbot.services.alert_service import alert_critical, send_alert


class TestSendAlert:
    @patch("flowbot.services.alert_service.ALERT_BOT_TOKEN", None)
    @patch("flowbot.services.alert_service.ALERT_CHAT_ID", None)
    def test_returns_false_when_not_configured(self):
        result = send_alert("ERROR", "Test message")
        assert result is False

    @patch("flowbot.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("flowbot.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("flowbot.services.alert_service.httpx.Client")
    def test_sends_alert_to_telegram(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = Mock(status_code=200)

        result = send_alert("CRITICAL", "History pool recreation failed", {"error": "refused"})

        assert result is True
        call_args = mock_client.post.call_args
        assert "api.telegram.org/bottest-token" in call_args[0][0]
        json_data = call_args[1]["json"]
        assert json_data["chat_id"] == "test-chat"
        assert "CRITICAL" in json_data["text"]
        assert "[!!!]" in json_data["text"]
        assert "error: refused" in json_data["text"]

    @patch("flowbot.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("flowbot.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("flowbot.services.alert_service.httpx.Client")
    def test_returns_false_on_telegram_error(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.return_value = Mock(status_code=400)

        assert send_alert("ERROR", "Test message") is False

    @patch("flowbot.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("flowbot.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("flowbot.services.alert_service.httpx.Client")
    def test_returns_false_on_network_error(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__enter__.return_value = mock_client
        mock_client.post.side_effect = httpx.ConnectError("Network error")

        assert send_alert("ERROR", "Test message") is False


class TestAlertShortcuts:
    @patch("flowbot.services.alert_service.send_alert")
    def test_alert_critical_calls_send_alert_with_critical_level(self, mock_send):
        mock_send.return_value = True

        result = alert_critical("Critical issue")

        mock_send.assert_called_once_with("CRITICAL", "Critical issue", None)
        assert result is True
