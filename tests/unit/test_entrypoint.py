"""Unit tests for the server entry point."""

from unittest.mock import MagicMock, patch

from policyrag.__main__ import main
from policyrag.config import Settings


@patch("policyrag.__main__.get_settings")
@patch("policyrag.__main__.uvicorn.run")
def test_main_runs_app_on_configured_address(
    mock_run: MagicMock, mock_get_settings: MagicMock
) -> None:
    """Test that the entry point serves the app on api_host and api_port."""
    mock_get_settings.return_value = Settings(api_host="127.0.0.1", api_port=9123)

    main()

    mock_run.assert_called_once_with("policyrag.main:app", host="127.0.0.1", port=9123)
