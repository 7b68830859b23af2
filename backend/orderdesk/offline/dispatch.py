# Overview: Sends queued commands to the OrderDesk HTTP API with httpx.

from __future__ import annotations

import httpx

from ..commands import AssignCourier, Command, ConfirmDelivery
from ..errors import ConnectivityError, ValidationError, error_from_response


class HttpDispatcher:
    """
    Client-side dispatcher for courier-originated commands.

    Transport failures (refused connections, DNS, timeouts) become
    ConnectivityError, the one kind the offline queue absorbs. Error
    responses are rebuilt into the same typed errors the server raised.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = {"Authorization": f"Bearer {token}"}

    def _route(self, command: Command) -> tuple[str, str, dict]:
        if isinstance(command, ConfirmDelivery):
            return "POST", f"/api/orders/{command.order_id}/delivery-status", command.to_request_body()
        if isinstance(command, AssignCourier):
            return "POST", f"/api/orders/{command.order_id}/courier", {"courier_id": command.courier_id}
        raise ValidationError(
            f"{type(command).__name__} cannot be sent from a device",
            details={"type": getattr(command, "type", None)},
        )

    def dispatch(self, command: Command) -> dict:
        method, path, body = self._route(command)
        url = f"{self.base_url}{path}"

        try:
            response = self._client.request(method, url, json=body, headers=self._headers)
        except httpx.TransportError as exc:
            raise ConnectivityError(
                f"Cannot reach {self.base_url}",
                details={"reason": str(exc) or type(exc).__name__},
            ) from exc

        if response.is_success:
            return response.json() if response.content else {}

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        raise error_from_response(response.status_code, payload)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
