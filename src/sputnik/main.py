"""NeuroSputnik command line entry point."""

from pathlib import Path
from typing import List, Optional
import argparse
import asyncio
import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from sputnik.assistant import NeuroAssistant
from sputnik.config import Config, load_config
from sputnik.responses import ASSISTANT_NAME, WELCOME_MESSAGE
from sputnik.storage.persistence import FileStore
from sputnik.storage.suppliers import DirectoryBlobSupplier, HttpBlobSupplier, ModelBlobSupplier

console = Console()

EXIT_COMMANDS = {"/exit", "/quit", "выход"}


def setup_logging(config: Config) -> None:
    handlers: List[logging.Handler] = [RichHandler(console=console, show_path=False)]
    if config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(file_handler)

    logging.basicConfig(level=config.log_level.upper(), format="%(message)s", handlers=handlers, force=True)


def build_supplier(config: Config) -> ModelBlobSupplier:
    if config.storage.model_source_url:
        return HttpBlobSupplier(
            config.storage.model_source_url,
            suffix=config.storage.model_suffix,
            timeout=config.storage.request_timeout,
        )
    return DirectoryBlobSupplier(config.storage.models_dir, suffix=config.storage.model_suffix)


def build_assistant(config: Config) -> NeuroAssistant:
    return NeuroAssistant(
        config=config,
        persistence=FileStore(config.storage.data_dir),
        supplier=build_supplier(config),
    )


def render_status(status: dict) -> Table:
    engine = status["engine"]
    storage = status["storage"]
    dataset = status["dataset"]

    table = Table(title=f"{ASSISTANT_NAME} status", show_header=False)
    table.add_column("key", style="bold")
    table.add_column("value")
    table.add_row("Engine", engine["state"])
    table.add_row("Model", engine["current_model"] or "none (basic responses)")
    table.add_row("Offline mode", "yes" if status["offline_mode"] else "no")
    table.add_row("Storage", f"{storage['used_bytes'] / 1024 / 1024:.1f} MiB ({storage['percent']}%)")
    table.add_row("Conversations", str(dataset["conversations"]))
    table.add_row("Sessions", str(dataset["sessions"]))
    table.add_row("History", str(status["history"]))
    return table


async def run_chat(assistant: NeuroAssistant, message: Optional[str]) -> None:
    if message:
        reply = await assistant.send_message(message)
        if reply:
            console.print(f"[bold cyan]{ASSISTANT_NAME}:[/] {reply.text}")
        return

    console.print(f"[bold cyan]{ASSISTANT_NAME}:[/] {WELCOME_MESSAGE}")
    while True:
        try:
            text = await asyncio.to_thread(console.input, "[bold green]Вы:[/] ")
        except (EOFError, KeyboardInterrupt):
            break
        if text.strip().lower() in EXIT_COMMANDS:
            break
        reply = await assistant.send_message(text)
        if reply:
            console.print(f"[bold cyan]{ASSISTANT_NAME}:[/] {reply.text}")


async def run(args: argparse.Namespace, config: Config) -> int:
    assistant = build_assistant(config)
    await assistant.start()
    try:
        if args.command == "chat":
            await run_chat(assistant, " ".join(args.message) if args.message else None)
        elif args.command == "train":
            report = await assistant.start_training(args.epochs)
            style = "green" if report.success else "red"
            console.print(f"[{style}]{report.message}[/] ({report.examples} examples)")
            if report.success and args.save:
                await assistant.save_model()
            return 0 if report.success else 1
        elif args.command == "status":
            console.print(render_status(assistant.status()))
            usage = await assistant.memory_usage()
            console.print(f"Runtime memory: {usage.used_mib}/{usage.total_mib} MiB ({usage.percent}%)")
        elif args.command == "export":
            Path(args.path).write_bytes(assistant.export_dataset())
            console.print(f"Exported {len(assistant.store)} records to {args.path}")
        elif args.command == "import":
            if not assistant.import_dataset(Path(args.path).read_bytes()):
                console.print("[red]Malformed dataset file[/]")
                return 1
            console.print(f"Imported {len(assistant.store)} records")
    finally:
        await assistant.shutdown()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="NeuroSputnik: offline self-training assistant")
    parser.add_argument("--config", help="Path to config.yaml")
    subparsers = parser.add_subparsers(dest="command")

    chat = subparsers.add_parser("chat", help="Talk to the assistant")
    chat.add_argument("message", nargs="*", help="Single message; interactive if omitted")

    train = subparsers.add_parser("train", help="Train the loaded model on the collected corpus")
    train.add_argument("--epochs", type=int, default=None)
    train.add_argument("--save", action="store_true", help="Save the model after training")

    subparsers.add_parser("status", help="Show engine and storage status")

    export = subparsers.add_parser("export", help="Export the corpus snapshot")
    export.add_argument("path")

    import_ = subparsers.add_parser("import", help="Replace the corpus with a snapshot")
    import_.add_argument("path")

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "chat"
        args.message = []

    config = load_config(args.config)
    setup_logging(config)

    return asyncio.run(run(args, config))


if __name__ == "__main__":
    raise SystemExit(main())
