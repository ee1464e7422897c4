import asyncio
import inspect
import logging

import typer
from dotenv import load_dotenv
from InquirerPy import inquirer

from nft_indexer.app.config import settings
from nft_indexer.app.interface.tasks import TASKS


load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

app = typer.Typer()
indexer_app = typer.Typer(help="cli for indexing ERC-721 transfers and metadata.")
app.add_typer(indexer_app, name="indexer")


@indexer_app.command("run")
def run(
    backend: str = typer.Option("sqlalchemy", help="Store backend: sqlalchemy | memory"),
) -> None:
    task_name = inquirer.select(
        message="Select task:",
        choices=list(TASKS.keys()),
        pointer="❯",
        instruction="Use ↑/↓ to move, Enter to select",
    ).execute()
    chain_id = int(
        inquirer.text(
            message="Chain ID:",
            default=str(settings.chain_id),
        ).execute()
    )

    task = TASKS[task_name]
    params = inspect.signature(task).parameters

    kwargs: dict[str, object] = {"chain_id": chain_id, "backend": backend}

    if "from_block" in params:
        kwargs["from_block"] = inquirer.text(
            message="From block (inclusive, number | earliest | resume):",
            default="resume",
        ).execute()
    if "to_block" in params:
        kwargs["to_block"] = inquirer.text(
            message="To block (inclusive, number | latest):",
            default="latest",
        ).execute()

    if "limit" in params:
        limit_str = inquirer.text(
            message="Limit (optional, empty = no limit):",
            default="",
        ).execute()
        kwargs["limit"] = int(limit_str) if limit_str.strip() else None

    asyncio.run(task(**kwargs))  # type: ignore


if __name__ == "__main__":
    typer.echo("--- NFT Indexer CLI ---")
    app()
