# run.py
# Entry point. Config and wiring only, no logic lives here.
#
# Backend, model and database come from the environment; see config.py.

from warehouse_assistant import display
from warehouse_assistant.assistant import Assistant, AssistantBusyError
from warehouse_assistant.config import Settings, build_client, probe_connectivity
from warehouse_assistant.store import SqliteWarehouseStore
from warehouse_assistant.tools import ToolExecutor

EXIT_COMMANDS = {"/exit", "/quit"}
CLEAR_COMMAND = "/clear"


def main() -> None:
    settings = Settings.from_env()

    store = SqliteWarehouseStore(settings.db_path)
    store.init_schema()

    assistant = Assistant(
        client=build_client(settings),
        executor=ToolExecutor(store),
        is_online=lambda: probe_connectivity(settings.connectivity_url),
    )

    display.banner(settings.backend, settings.model)
    display.assistant_message(assistant.messages[0])

    while True:
        try:
            text = display.console.input("[bold cyan]› [/bold cyan]")
        except (EOFError, KeyboardInterrupt):
            break

        command = text.strip().lower()
        if command in EXIT_COMMANDS:
            break
        if command == CLEAR_COMMAND:
            assistant.reset()
            continue

        try:
            assistant.submit(text)
        except AssistantBusyError:
            continue


if __name__ == "__main__":
    main()
