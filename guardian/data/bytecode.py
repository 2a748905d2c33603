"""
guardian/data/bytecode.py
On-chain module lookup used to verify what was simulated.

The simulator may report the hash of the module bytecode it executed. The
lookup fetches the module currently deployed on chain so the engine can
tell the caller when the two diverge, when the module does not exist, or
when the called function is not exposed by it.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Protocol

import httpx

from guardian.errors import ErrorCode, GuardianError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModuleInfo:
    exists: bool
    bytecode_hash: Optional[str] = None
    function_names: FrozenSet[str] = field(default_factory=frozenset)


class BytecodeLookup(Protocol):
    async def fetch_module(self, address: str, module_name: str) -> ModuleInfo:
        ...


def hash_bytecode(bytecode_hex: str) -> str:
    """sha3-256 of the raw module bytes, as 0x-prefixed hex."""
    raw = bytecode_hex[2:] if bytecode_hex.lower().startswith("0x") else bytecode_hex
    return "0x" + hashlib.sha3_256(bytes.fromhex(raw)).hexdigest()


def normalize_hash(value: str) -> str:
    value = value.strip().lower()
    return value if value.startswith("0x") else "0x" + value


class NodeBytecodeLookup:
    """Reads modules from a full node's REST API (`/v1/accounts/{addr}/module/{name}`)."""

    def __init__(
        self,
        node_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        base = node_url.rstrip("/")
        if base.endswith("/v1"):
            base = base[:-3]
        self.base_url = base
        self.timeout = timeout
        self._transport = transport

    async def fetch_module(self, address: str, module_name: str) -> ModuleInfo:
        url = f"{self.base_url}/v1/accounts/{address}/module/{module_name}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise GuardianError(
                ErrorCode.BYTECODE_LOOKUP_FAILED,
                f"node request failed: {e}",
                details={"url": url},
            )

        if resp.status_code == 404:
            logger.info(f"[Bytecode] Module not found: {address}::{module_name}")
            return ModuleInfo(exists=False)
        if resp.status_code >= 400:
            raise GuardianError(
                ErrorCode.BYTECODE_LOOKUP_FAILED,
                f"node returned HTTP {resp.status_code}",
                details={"url": url, "status_code": resp.status_code},
            )

        try:
            body = resp.json()
            bytecode = body.get("bytecode") or ""
            functions = (body.get("abi") or {}).get("exposed_functions") or []
            names = frozenset(f["name"] for f in functions if isinstance(f, dict) and "name" in f)
            digest = hash_bytecode(bytecode) if bytecode else None
        except (ValueError, AttributeError, TypeError) as e:
            raise GuardianError(
                ErrorCode.BYTECODE_LOOKUP_FAILED,
                f"unreadable module payload: {e}",
                details={"url": url},
            )

        return ModuleInfo(exists=True, bytecode_hash=digest, function_names=names)
