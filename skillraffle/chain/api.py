import os
from urllib.parse import urljoin
from dotenv import load_dotenv
from .utils import open_session, get_jwt_token
from typing import Any, Optional, Mapping


class ChainClient:
    """HTTP gateway client for the randomness oracle, prize registry and payouts.

    Implements :class:`~skillraffle.chain.interfaces.RandomnessOracle`,
    :class:`~skillraffle.chain.interfaces.PrizeRegistry` and
    :class:`~skillraffle.chain.interfaces.PayoutSender`.
    """

    def __init__(self, base_fqdn: Optional[str] = None, timeout: int = 45):
        load_dotenv()
        fqdn = base_fqdn or os.getenv("CHAIN_SERVICE_FQDN")
        if not fqdn:
            raise ValueError("Environment variable 'CHAIN_SERVICE_FQDN' is not set")

        self.base_url = f"https://{fqdn}".rstrip("/")
        session_info = open_session()
        if not session_info or len(session_info) != 2:
            raise ValueError("open_session() must return (session, csrf_token)")
        self.session, self.csrf = session_info
        self.jwt = get_jwt_token(self.session)
        self.timeout = timeout

    # -------- headers --------
    @property
    def public_headers(self) -> Mapping[str, str]:
        return {"Accept": "application/json"}

    @property
    def auth_headers(self) -> Mapping[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {self.jwt}"}

    @property
    def auth_csrf_headers(self) -> Mapping[str, str]:
        return {**self.auth_headers, "X-CSRFTOKEN": self.csrf}

    # -------- core request --------
    def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Any:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        r = self.session.request(
            method=method.upper(),
            url=url,
            headers=headers or self.public_headers,
            params=params,
            json=json,
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json() if r.content else None

    # -------- randomness oracle --------
    def request_randomness(
        self,
        oracle_address: str,
        round_id: int,
        params: Optional[Mapping[str, Any]] = None,
    ) -> int:
        response = self._request(
            "POST",
            "/api/v1/randomness/requests",
            headers=self.auth_csrf_headers,
            json={
                "oracle": oracle_address,
                "round_id": round_id,
                "params": dict(params or {}),
            },
        )
        if not isinstance(response, dict) or "request_id" not in response:
            raise RuntimeError(f"Unexpected randomness request response: {response!r}")
        # Request ids are uint256 values; the gateway sends them as strings.
        return int(response["request_id"])

    # -------- prize registry --------
    def owner_of(self, registry: str, token_id: int) -> str:
        response = self._request(
            "GET",
            f"/api/v1/registries/{registry}/tokens/{token_id}/owner",
            headers=self.auth_headers,
        )
        if not isinstance(response, dict) or not response.get("owner"):
            raise RuntimeError(f"Unexpected owner lookup response: {response!r}")
        return response["owner"]

    def transfer(self, registry: str, sender: str, recipient: str, token_id: int) -> None:
        response = self._request(
            "POST",
            f"/api/v1/registries/{registry}/transfers",
            headers=self.auth_csrf_headers,
            json={"from": sender, "to": recipient, "token_id": token_id},
        )
        _require_success(response, "Prize transfer")

    # -------- payouts --------
    def send(self, recipient: str, amount: int) -> None:
        response = self._request(
            "POST",
            "/api/v1/payouts",
            headers=self.auth_csrf_headers,
            json={"recipient": recipient, "amount": str(amount)},
        )
        _require_success(response, "Payout")


def _require_success(response: Any, what: str) -> None:
    if not isinstance(response, dict):
        raise RuntimeError(f"Unexpected {what.lower()} response: {response!r}")
    if response.get("status") != "success":
        message = response.get("message")
        raise RuntimeError(f"{what} failed" + (f": {message}" if message else "."))
