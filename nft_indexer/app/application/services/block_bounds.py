from __future__ import annotations

from typing import Literal

from nft_indexer.app.domain.ports.out import NftStore, TransferLogSource


BlockSelector = int | str
_EARLIEST: Literal["earliest"] = "earliest"
_RESUME: Literal["resume"] = "resume"
_LATEST: Literal["latest"] = "latest"


async def resolve_block_bounds(
    *,
    store: NftStore,
    source: TransferLogSource,
    from_block: BlockSelector,
    to_block: BlockSelector,
    start_block: int = 0,
) -> tuple[int, int]:
    """
    Resolve from_block / to_block into concrete block numbers.

    - ints (or numeric strings) are returned as-is.
    - from_block "earliest"        -> start_block.
    - from_block "resume" / ""     -> one past the last stored transfer block,
                                      or start_block when nothing is stored.
    - to_block "latest" / ""       -> current chain head.
    """
    fb = _as_int(from_block)
    if fb is None:
        fb_str = str(from_block).strip().lower()
        if fb_str == _EARLIEST:
            fb = start_block
        elif fb_str in ("", _RESUME):
            last = await store.last_indexed_block()
            fb = start_block if last is None else max(last + 1, start_block)
        else:
            raise ValueError(f"Unsupported from_block value: {from_block!r}")

    tb = _as_int(to_block)
    if tb is None:
        tb_str = str(to_block).strip().lower()
        if tb_str in ("", _LATEST):
            tb = await source.head_block()
        else:
            raise ValueError(f"Unsupported to_block value: {to_block!r}")

    return fb, tb


def _as_int(selector: BlockSelector) -> int | None:
    if isinstance(selector, int):
        return selector
    stripped = selector.strip()
    if stripped.isdigit():
        return int(stripped)
    return None
