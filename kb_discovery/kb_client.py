# kb_discovery/kb_client.py

import logging
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger("kb_discovery")


class KnowledgeBaseError(Exception):
    pass


class KnowledgeBaseNetworkError(KnowledgeBaseError):
    """The request was sent but no response came back (refused, DNS, timeout)."""

    def __init__(self, base_url: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Network Error: Cannot connect to AnythingLLM at {base_url}. "
            "Please check if the service is running."
        )
        self.base_url = base_url
        self.cause = cause


class KnowledgeBaseApiError(KnowledgeBaseError):
    """The service answered with an error status; `detail` is the message embedded in its body."""

    def __init__(self, status_code: int, reason: str, detail: str):
        super().__init__(f"API Error ({status_code} {reason}): {detail}")
        self.status_code = status_code
        self.reason = reason
        self.detail = detail


class KnowledgeBaseClient:
    """
    Minimal AnythingLLM REST wrapper:

        text = kb.send_message("aws-ws", "some prompt")
        workspaces = kb.list_workspaces()
    """

    def __init__(self, base_url: str, api_key: Optional[str] = None, *, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")
            if message:
                return str(message)
        return "Unknown error"

    def send_message(self, workspace_slug: str, message: str, mode: str = "query") -> str:
        """
        Single chat call against a workspace. Returns the raw text response (may be empty).
        """
        url = f"{self.base_url}/api/v1/workspace/{workspace_slug}/chat"
        try:
            response = self._session.post(
                url,
                json={"message": message, "mode": mode},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning(f"[KB] No response from {url}: {e}")
            raise KnowledgeBaseNetworkError(self.base_url, e) from e
        except requests.RequestException as e:
            logger.warning(f"[KB] Request to {url} failed: {e}")
            raise KnowledgeBaseError(f"Error: {e}") from e

        if not response.ok:
            detail = self._error_detail(response)
            logger.warning(f"[KB] {url} answered {response.status_code}: {detail}")
            raise KnowledgeBaseApiError(response.status_code, response.reason or "", detail)

        try:
            data: Any = response.json()
        except ValueError as e:
            raise KnowledgeBaseError(f"Error: invalid JSON from AnythingLLM ({e})") from e
        if not isinstance(data, dict):
            return ""
        return data.get("textResponse") or data.get("response") or ""

    def list_workspaces(self) -> List[Dict[str, str]]:
        """
        [{slug, name}, ...]. Any failure degrades to an empty list.
        """
        try:
            response = self._session.get(
                f"{self.base_url}/api/v1/workspaces",
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"[KB] Error fetching workspaces: {e}")
            return []

        # both { workspaces: [...] } and a bare list are seen in the wild
        workspaces = data.get("workspaces") if isinstance(data, dict) else data
        if not isinstance(workspaces, list):
            return []
        return [
            {"slug": w.get("slug"), "name": w.get("name")}
            for w in workspaces
            if isinstance(w, dict)
        ]
