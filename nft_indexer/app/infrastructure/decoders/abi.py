from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

# Resolve ABI path relative to the package, not the current working dir
ERC721_ABI_PATH = (
    Path(__file__).resolve().parents[2]  # .../nft_indexer/app
    / "registry"
    / "abi"
    / "ERC721.json"
)


def load_abi(abi_path: Path) -> list[dict[str, Any]]:
    if not abi_path.exists():
        raise FileNotFoundError(f"ABI file not found: {abi_path}")
    data = json.loads(abi_path.read_text(encoding="utf-8"))

    # Common formats:
    # - [ ... ] (ABI list)
    # - { "abi": [ ... ] } (artifact)
    if isinstance(data, list):
        abi = data
    elif isinstance(data, dict) and isinstance(data.get("abi"), list):
        abi = data["abi"]
    else:
        raise ValueError(
            f"Unsupported ABI JSON format in {abi_path}. Expected list or dict with 'abi' list."
        )

    return [x for x in abi if isinstance(x, dict)]


def find_event(abi: list[dict[str, Any]], event_name: str) -> dict[str, Any]:
    events = [x for x in abi if x.get("type") == "event" and x.get("name") == event_name]
    if not events:
        names = sorted({x.get("name") for x in abi if x.get("type") == "event"})
        raise ValueError(f"Event {event_name!r} not found in ABI. Available events: {names}")
    if len(events) > 1:
        raise ValueError(
            f"Multiple events named {event_name!r} found in ABI. "
            "Disambiguation by full signature is required."
        )
    return events[0]


def event_signature(event_abi: Mapping[str, Any]) -> str:
    name = event_abi.get("name")
    inputs = event_abi.get("inputs", [])
    if not isinstance(name, str) or not isinstance(inputs, list):
        raise ValueError("Invalid event ABI: missing name/inputs")
    types = []
    for inp in inputs:
        if not isinstance(inp, dict) or "type" not in inp:
            raise ValueError("Invalid event ABI inputs")
        types.append(inp["type"])
    return f"{name}({','.join(types)})"
