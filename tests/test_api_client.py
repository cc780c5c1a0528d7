from unittest import mock

import pytest
import requests

from sheetvoice.client import APIClient, upload_and_convert


def _response(payload=None, content=b"", status=200):
    response = mock.Mock()
    response.json.return_value = payload or {}
    response.content = content
    response.status_code = status
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} Client Error")
    else:
        response.raise_for_status.return_value = None
    return response


@pytest.fixture
def client():
    api = APIClient("http://api.test:5001/")
    api.session = mock.Mock()
    return api


def test_base_url_is_normalised(client):
    client.session.request.return_value = _response({"status": "OK"})

    assert client.health_check() == {"status": "OK"}
    client.session.request.assert_called_once_with("GET", "http://api.test:5001/api/health", timeout=30)


def test_upload_posts_spreadsheet_and_voice(client, tmp_path):
    path = tmp_path / "batch.csv"
    path.write_text("ID,Text\nA,alpha\n", encoding="utf-8")
    client.session.request.return_value = _response({"success": True, "job_id": "job_1"})

    result = client.upload_spreadsheet(str(path), voice="nova")

    assert result["job_id"] == "job_1"
    args, kwargs = client.session.request.call_args
    assert args == ("POST", "http://api.test:5001/api/upload")
    assert kwargs["data"] == {"voice": "nova"}
    assert kwargs["files"]["spreadsheet"][0] == "batch.csv"
    assert kwargs["timeout"] == 300


def test_upload_missing_file(client, tmp_path):
    with pytest.raises(FileNotFoundError):
        client.upload_spreadsheet(str(tmp_path / "missing.csv"))

    client.session.request.assert_not_called()


def test_connection_errors_are_reported(client):
    client.session.request.side_effect = requests.ConnectionError("refused")

    with pytest.raises(requests.ConnectionError, match="Unable to connect to API server"):
        client.list_voices()


def test_http_errors_name_the_action(client):
    client.session.request.return_value = _response(status=404)

    with pytest.raises(requests.RequestException, match="Get library entry failed"):
        client.get_library_entry("missing")


def test_library_helpers_unwrap_payloads(client):
    client.session.request.side_effect = [
        _response({"success": True, "entry": {"id": "e1"}}),
        _response({"success": True, "stats": {"total_libraries": 1}}),
    ]

    assert client.get_library_entry("e1") == {"id": "e1"}
    assert client.get_library_stats() == {"total_libraries": 1}
    urls = [call.args[1] for call in client.session.request.call_args_list]
    assert urls == ["http://api.test:5001/api/library/e1", "http://api.test:5001/api/library/stats/summary"]


def test_download_audio_writes_file(client, tmp_path):
    client.session.request.return_value = _response(content=b"RIFFdata")

    output = client.download_audio("A.wav", str(tmp_path / "A.wav"))

    assert output.read_bytes() == b"RIFFdata"
    assert client.session.request.call_args.args[1].endswith("/api/library/audio/A.wav")


def test_wait_for_job_polls_until_terminal(client):
    client.session.request.side_effect = [
        _response({"status": "extracting"}),
        _response({"status": "synthesizing", "progress": 50}),
        _response({"status": "completed", "library_ref": "e1"}),
    ]

    with mock.patch("sheetvoice.client.api_client.time.sleep") as sleep:
        result = client.wait_for_job("job_1", poll_interval=0.5)

    assert result["library_ref"] == "e1"
    assert sleep.call_count == 2


def test_wait_for_job_times_out(client):
    client.session.request.return_value = _response({"status": "synthesizing"})

    with mock.patch("sheetvoice.client.api_client.time.sleep"):
        with pytest.raises(TimeoutError):
            client.wait_for_job("job_1", poll_interval=0.01, timeout=0)


def test_upload_and_convert_without_waiting(tmp_path):
    path = tmp_path / "batch.csv"
    path.write_text("ID,Text\nA,alpha\n", encoding="utf-8")

    with mock.patch("sheetvoice.client.api_client.requests.Session") as session_cls:
        session_cls.return_value.request.return_value = _response({"success": True, "job_id": "job_9"})
        result = upload_and_convert(str(path), api_url="http://api.test", wait_for_result=False)

    assert result["job_id"] == "job_9"
