from __future__ import annotations

from collections.abc import Awaitable, Callable

from .domain.nft_transfers_task import index_nft_transfers_task as domain__index_nft_transfers_task
from .domain.backfill_missing_images_task import (
    backfill_missing_images_task as domain__backfill_missing_images_task,
)

TaskFn = Callable[..., Awaitable[None]]

TASKS: dict[str, TaskFn] = {
    "domain__index_nft_transfers_task": domain__index_nft_transfers_task,
    "domain__backfill_missing_images_task": domain__backfill_missing_images_task,
}
