"""NiceGUI chat interface driven by the session controller."""

from nicegui import events, ui

from src.chat.controller import ChatEventHandlers, SessionController
from src.chat.errors import EmptyTurn, NothingToSave, TurnInProgress
from src.client.ollama_service import OllamaService
from src.models.schemas import DocumentContent, Message, Role, TurnState
from src.parsing.document_parser import DocumentParseError, parse_document
from src.parsing.images import ImageValidationError, encode_image, to_data_url
from src.storage.session_store import get_session_store

CUSTOM_CSS = """
<style>
    body { background: #f5f5f5; }
    .app-container {
        background: white;
        border-radius: 12px;
        box-shadow: 0 2px 8px rgba(0, 0, 0, 0.1);
        overflow: hidden;
    }
    .header { background: linear-gradient(135deg, #0f766e 0%, #1e3a8a 100%); }
    .message-user { background: #1e3a8a; color: white; border-radius: 18px 18px 4px 18px; }
    .message-assistant { background: #f3f4f6; color: #1f2937; border-radius: 18px 18px 18px 4px; }
    .message-assistant pre { margin: 0.5rem 0; }
</style>
"""

STATUS_TEXT = {
    TurnState.IDLE: "",
    TurnState.AWAITING_FIRST_BYTE: "Thinking...",
    TurnState.STREAMING: "Generating response...",
}


@ui.page("/")
def chat_page() -> None:
    """Main chat page. Each browser tab gets its own controller."""
    ui.add_head_html(CUSTOM_CSS)

    pending_images: list[str] = []
    pending_documents: list[DocumentContent] = []
    bubbles: dict[str, ui.markdown] = {}

    messages_container: ui.column
    history_list: ui.column
    status_label: ui.label
    attachments_label: ui.label
    input_field: ui.textarea
    send_btn: ui.button

    def render_message(message: Message) -> None:
        is_user = message.role is Role.USER
        align = "justify-end" if is_user else "justify-start"
        bubble = "message-user" if is_user else "message-assistant"
        with ui.row().classes(f"w-full {align}"):
            with ui.column().classes(f"max-w-[75%] px-4 py-3 gap-2 {bubble}"):
                for image in message.attachments:
                    ui.image(to_data_url(image)).classes("w-48 rounded")
                bubbles[message.id] = ui.markdown(message.text).classes("text-sm")

    def refresh_messages() -> None:
        bubbles.clear()
        messages_container.clear()
        with messages_container:
            transcript = controller.transcript()
            if not transcript:
                with ui.column().classes("w-full h-64 items-center justify-center"):
                    ui.icon("forum").classes("text-5xl text-gray-300")
                    ui.label("Start a conversation").classes("text-lg text-gray-400")
            for message in transcript:
                render_message(message)

    def refresh_history() -> None:
        history_list.clear()
        with history_list:
            summaries = controller.session_summaries()
            if not summaries:
                ui.label("No saved chats").classes("text-gray-400")
            for summary in summaries:
                active = "bg-gray-100" if summary.id == controller.session.id else ""
                with ui.card().classes(f"w-full cursor-pointer {active}").on(
                    "click", lambda _, sid=summary.id: load_chat(sid)
                ):
                    with ui.row().classes("w-full items-start justify-between no-wrap"):
                        with ui.column().classes("gap-0 min-w-0"):
                            ui.label(summary.title).classes("font-medium truncate")
                            ui.label(summary.preview).classes("text-sm text-gray-500 truncate")
                            created = summary.created_at.astimezone().strftime("%Y-%m-%d %H:%M")
                            ui.label(created).classes("text-xs text-gray-400")
                        ui.button(icon="delete").props("flat round dense size=sm").on(
                            "click.stop", lambda _, sid=summary.id: delete_chat(sid)
                        )

    def refresh_controls() -> None:
        busy = controller.turn_state is not TurnState.IDLE
        status_label.set_text(STATUS_TEXT[controller.turn_state])
        send_btn.set_enabled(not busy)
        names = [d.name for d in pending_documents]
        if pending_images:
            names.append(f"{len(pending_images)} image(s)")
        attachments_label.set_text(", ".join(names))

    def on_message_appended(message: Message) -> None:
        refresh_messages()
        refresh_controls()

    def on_message_updated(message_id: str, text: str) -> None:
        bubble = bubbles.get(message_id)
        if bubble is not None:
            bubble.set_content(text)
        refresh_controls()

    def on_turn_failed(reason: str) -> None:
        refresh_messages()
        refresh_controls()
        ui.notify(reason, type="negative")

    def on_turn_completed(message: Message) -> None:
        refresh_controls()

    controller = SessionController(
        OllamaService(),
        get_session_store(),
        handlers=ChatEventHandlers(
            on_message_appended=on_message_appended,
            on_message_updated=on_message_updated,
            on_turn_failed=on_turn_failed,
            on_turn_completed=on_turn_completed,
        ),
    )

    async def send_message() -> None:
        try:
            task = controller.begin_turn(
                input_field.value or "", list(pending_images), list(pending_documents)
            )
        except (EmptyTurn, TurnInProgress) as e:
            ui.notify(str(e), type="warning")
            return
        input_field.value = ""
        pending_images.clear()
        pending_documents.clear()
        refresh_controls()
        await task

    def save_chat() -> None:
        try:
            session = controller.save_active()
        except (NothingToSave, TurnInProgress) as e:
            ui.notify(str(e), type="warning")
            return
        ui.notify(f"Saved '{session.title}'", type="positive")
        refresh_history()

    def load_chat(session_id: str) -> None:
        try:
            session = controller.load_session(session_id)
        except TurnInProgress as e:
            ui.notify(str(e), type="warning")
            return
        if session is None:
            ui.notify("Chat not found", type="negative")
            refresh_history()
            return
        history_drawer.hide()
        refresh_messages()
        refresh_controls()

    async def delete_chat(session_id: str) -> None:
        await controller.delete_session(session_id)
        refresh_history()
        refresh_messages()
        refresh_controls()

    async def new_chat() -> None:
        if controller.is_dirty:
            ui.notify("Unsaved chat discarded", type="info")
        await controller.reset_active()
        pending_images.clear()
        pending_documents.clear()
        refresh_messages()
        refresh_controls()

    async def handle_image(e: events.UploadEventArguments) -> None:
        try:
            pending_images.append(encode_image(await e.file.read()))
        except ImageValidationError as err:
            ui.notify(str(err), type="negative")
        refresh_controls()

    async def handle_document(e: events.UploadEventArguments) -> None:
        try:
            pending_documents.append(parse_document(e.file.name, await e.file.read()))
        except DocumentParseError as err:
            ui.notify(str(err), type="negative")
        refresh_controls()

    # === UI Layout ===
    with ui.left_drawer(value=False).classes("bg-white") as history_drawer:
        ui.label("Chat History").classes("text-lg font-semibold")
        history_list = ui.column().classes("w-full gap-2")

    with (
        ui.element("div").classes("w-full min-h-screen p-4 md:p-8"),
        ui.column().classes("w-full max-w-3xl mx-auto app-container").style(
            "height: calc(100vh - 4rem)"
        ),
    ):
        with ui.row().classes("w-full header px-5 py-4 items-center justify-between"):
            with ui.row().classes("items-center gap-3"):
                ui.button(
                    icon="history", on_click=lambda: (refresh_history(), history_drawer.toggle())
                ).props("flat round color=white")
                ui.label("AI Chat with Ollama").classes("text-lg font-semibold text-white")
            with ui.row().classes("items-center gap-1"):
                ui.button(icon="save", on_click=save_chat).props("flat round color=white")
                ui.button(icon="refresh", on_click=new_chat).props("flat round color=white")

        with (
            ui.scroll_area().classes("flex-grow w-full bg-gray-50"),
            ui.column().classes("w-full p-5"),
        ):
            messages_container = ui.column().classes("w-full gap-4")

        with ui.column().classes("w-full p-4 gap-1 bg-white border-t"):
            with ui.row().classes("w-full gap-2 text-xs text-gray-500"):
                status_label = ui.label()
                attachments_label = ui.label()
            with ui.row().classes("w-full gap-3 items-end no-wrap"):
                ui.upload(
                    on_upload=handle_image, auto_upload=True, label="Image"
                ).props('accept="image/*" flat dense').classes("w-28")
                ui.upload(
                    on_upload=handle_document, auto_upload=True, label="Document"
                ).props('accept=".pdf,.txt,.md" flat dense').classes("w-28")
                input_field = (
                    ui.textarea(placeholder="Type your message...")
                    .props("autogrow outlined dense rows=1")
                    .classes("flex-grow")
                    .on("keydown.enter.prevent", send_message)
                )
                send_btn = ui.button(icon="send", on_click=send_message).props("round unelevated")

    refresh_messages()
    refresh_controls()


def main() -> None:
    ui.run(title="Ollama Chat", port=8080, reload=False)


if __name__ == "__main__":
    main()
