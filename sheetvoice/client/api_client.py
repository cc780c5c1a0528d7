"""
Client module for communicating with the conversion API server.

This module provides a simple interface to:
- Upload spreadsheets for conversion and poll job progress
- List voices and check whether the speech service is configured
- Browse, inspect and delete library entries
- Download audio files
"""

import time
from pathlib import Path
from typing import Any, Dict, Optional

import requests
from requests.exceptions import ConnectionError, RequestException

from ..config import ConfigManager

TERMINAL_STATUSES = {"completed", "failed"}


class APIClient:
    """Client for communicating with the conversion API server."""

    def __init__(self, base_url: Optional[str] = None, timeout: int = 30):
        """
        Initialize the API client.

        Args:
            base_url: Base URL of the API server (default: API_BASE_URL setting)
            timeout: Default request timeout in seconds
        """
        self.base_url = (base_url or ConfigManager.get("API_BASE_URL")).rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

    def _request(self, method: str, path: str, action: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method, f"{self.base_url}/api{path}", **kwargs)
            response.raise_for_status()
            return response
        except ConnectionError as e:
            raise ConnectionError(f"Unable to connect to API server: {e}") from e
        except RequestException as e:
            raise RequestException(f"{action} failed: {e}") from e

    def health_check(self) -> Dict[str, Any]:
        """
        Check if the API server is healthy.

        Raises:
            ConnectionError: If unable to connect to the server
        """
        return self._request("GET", "/health", "Health check").json()

    def upload_spreadsheet(self, file_path: str, voice: Optional[str] = None, timeout: int = 300) -> Dict[str, Any]:
        """
        Upload a spreadsheet for conversion.

        Args:
            file_path: Path to a CSV or XLSX file
            voice: Voice identifier (default: server default)
            timeout: Request timeout in seconds

        Returns:
            Dictionary containing job_id

        Raises:
            FileNotFoundError: If the file doesn't exist
            RequestException: If the upload fails
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Spreadsheet not found: {file_path}")

        data = {"voice": voice} if voice else {}
        with open(file_path, "rb") as spreadsheet:
            files = {"spreadsheet": (file_path.name, spreadsheet)}
            return self._request("POST", "/upload", "Upload", files=files, data=data, timeout=timeout).json()

    def get_progress(self, job_id: str) -> Dict[str, Any]:
        """
        Get the current state of a conversion job.

        Raises:
            RequestException: If the request fails or the job is unknown
        """
        return self._request("GET", f"/upload/progress/{job_id}", "Get job progress").json()

    def list_jobs(self) -> Dict[str, Any]:
        """List live jobs."""
        return self._request("GET", "/jobs", "List jobs").json()

    def list_voices(self) -> Dict[str, Any]:
        """List available voices."""
        return self._request("GET", "/voices", "List voices").json()

    def test_voice(self, voice: str, text: Optional[str] = None) -> Dict[str, Any]:
        """Synthesize sample text with a voice."""
        payload = {"voice": voice}
        if text:
            payload["text"] = text
        return self._request("POST", "/voices/test", "Test voice", json=payload).json()

    def get_speech_status(self) -> Dict[str, Any]:
        """Whether the primary speech service is configured."""
        return self._request("GET", "/status", "Get speech status").json()

    def list_library(self) -> Dict[str, Any]:
        """List library entries with statistics."""
        return self._request("GET", "/library", "List library").json()

    def get_library_entry(self, entry_id: str) -> Dict[str, Any]:
        """Get one library entry."""
        return self._request("GET", f"/library/{entry_id}", "Get library entry").json()["entry"]

    def delete_library_entry(self, entry_id: str) -> Dict[str, Any]:
        """Delete a library entry and its audio files."""
        return self._request("DELETE", f"/library/{entry_id}", "Delete library entry").json()

    def get_library_stats(self) -> Dict[str, Any]:
        """Aggregate library statistics."""
        return self._request("GET", "/library/stats/summary", "Get library stats").json()["stats"]

    def download_audio(self, audio_ref: str, output_path: str) -> Path:
        """
        Download an audio file.

        Args:
            audio_ref: Audio reference from a library entry outcome
            output_path: Where to write the file

        Returns:
            Path of the written file
        """
        response = self._request("GET", f"/library/audio/{audio_ref}", "Download audio")
        output = Path(output_path)
        output.write_bytes(response.content)
        return output

    def wait_for_job(self, job_id: str, poll_interval: float = 2.0, timeout: float = 3600) -> Dict[str, Any]:
        """
        Poll a job until it reaches a terminal state.

        Args:
            job_id: Job identifier
            poll_interval: Time to wait between polls (seconds)
            timeout: Maximum time to wait (seconds)

        Returns:
            Final job snapshot (status completed or failed)

        Raises:
            TimeoutError: If the job doesn't finish within the timeout
            RequestException: If any API call fails
        """
        start_time = time.time()

        while time.time() - start_time < timeout:
            progress = self.get_progress(job_id)
            if progress.get("status") in TERMINAL_STATUSES:
                return progress

            time.sleep(poll_interval)

        raise TimeoutError(f"Job {job_id} did not finish within {timeout} seconds")


# Convenience function for quick uploads
def upload_and_convert(
    file_path: str,
    voice: Optional[str] = None,
    api_url: Optional[str] = None,
    wait_for_result: bool = True,
    poll_interval: float = 2.0,
    timeout: float = 3600,
) -> Dict[str, Any]:
    """
    Upload a spreadsheet and optionally wait for the job to finish.

    Returns:
        Either the upload response or the final job snapshot
    """
    client = APIClient(api_url)
    upload_result = client.upload_spreadsheet(file_path, voice)

    if not wait_for_result:
        return upload_result
    return client.wait_for_job(upload_result["job_id"], poll_interval, timeout)
