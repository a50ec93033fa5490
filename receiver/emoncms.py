"""emoncms.py

Posts new power readings to an EmonCMS instance via its input API:

    GET <url>/input/post.json?json={"power":..,"count":..}&node=5&apikey=...

EmonCMS answers the literal text "ok" when the input was accepted.
"""

import json
import logging

import requests

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 5.0


class EmonCmsSink:
    def __init__(self, url: str, apikey: str, timeout_s: float = DEFAULT_TIMEOUT_S):
        self.url = url.rstrip("/")
        self.apikey = apikey
        self.timeout_s = timeout_s

    def post(self, node_id: int, power: int, count: int) -> bool:
        """
        Send one reading. Never raises for network or API trouble; returns
        False after logging a warning instead. No retries.
        """
        params = {
            "json": json.dumps({"power": power, "count": count}, separators=(",", ":")),
            "node": node_id,
            "apikey": self.apikey,
        }
        endpoint = f"{self.url}/input/post.json"
        log.debug("Post power to EmonCMS (%s node=%s json=%s)", endpoint, node_id, params["json"])

        try:
            reply = requests.get(endpoint, params=params, timeout=self.timeout_s)
        except requests.RequestException as e:
            log.warning("Failed calling EmonCMS-API: %s", e)
            return False

        if not 200 <= reply.status_code < 300 or reply.text.strip() != "ok":
            log.warning(
                "Failed calling EmonCMS-API: HTTP %s %r",
                reply.status_code,
                reply.text.strip()[:80],
            )
            return False

        return True
