# assistant.py
# Tool-calling orchestration loop for the warehouse assistant.
#
# The Assistant owns all control flow. The backend only proposes text or
# function calls; the executor only runs them. Neither talks to the other.
#
# Control flow per request:
#   connectivity check → user message appended → backend call
#   → (tool round → backend call) × at most MAX_ITERATIONS
#   → first text part becomes the assistant message
#
# All terminal output is delegated to display.py, no formatting here.

from typing import Callable, Sequence

from warehouse_assistant import display
from warehouse_assistant.inference import InferenceClient, MalformedResponseError
from warehouse_assistant.models import (
    FunctionCallPart,
    FunctionResponsePart,
    HistoryTurn,
    LoopState,
    Message,
    Part,
    TextPart,
)
from warehouse_assistant.tools import TOOL_DECLARATIONS, ToolExecutor


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class AssistantBusyError(Exception):
    """Raised when a request is submitted while another is still running."""


# ---------------------------------------------------------------------------
# Fixed texts
# ---------------------------------------------------------------------------

MAX_ITERATIONS = 5

SYSTEM_INSTRUCTION = """\
Anda adalah "Warehouse Expert AI". Tugas Anda adalah memberikan analisa cerdas mengenai stok gudang.

KEMAMPUAN ANALISA ANDA:
1. Jika ditanya "Kenapa stok barang X banyak?", gunakan 'analyze_material_flow'. \
Lihat apakah ada pemasukan besar baru-baru ini atau karena barang jarang keluar.
2. Jika ditanya "Kapan stok habis?", gunakan 'days_to_empty' dan 'avg_daily_out' \
yang diberikan oleh tool analisa. Nilai 9999 berarti tidak ada pengeluaran signifikan.
3. Selalu bandingkan data pengeluaran (OUT) dan pemasukan (IN) 30 hari terakhir \
untuk memberikan kesimpulan.

ATURAN KETAT:
1. ZERO HALLUCINATION: Jangan mengarang angka atau tanggal transaksi.
2. Selalu sajikan data angka dalam Tabel Markdown agar mudah dibaca.
3. Gunakan Bahasa Indonesia yang sangat pintar, profesional, dan membantu.\
"""

GREETING = (
    "Halo! Saya Warehouse Expert AI. Saya bisa membantu Anda menganalisa pergerakan "
    "barang, memprediksi sisa hari stok, hingga mencari barang. "
    "Apa yang ingin Anda analisa hari ini?"
)
RESET_GREETING = "Riwayat dibersihkan. Apa yang bisa saya bantu?"
NO_TEXT_FALLBACK = "AI telah memproses data namun tidak memberikan jawaban teks."
APOLOGY = (
    "Maaf, saya kesulitan mengakses data saat ini. "
    "Mohon pastikan internet stabil dan server AI aktif."
)
OFFLINE_DIAGNOSTIC = "Anda sedang offline. Pastikan HP terhubung ke internet."


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def messages_to_history(messages: Sequence[Message]) -> list[HistoryTurn]:
    """One single-text turn per transcript message; assistant maps to model."""
    return [
        HistoryTurn(
            role="user" if m.role == "user" else "model",
            parts=[TextPart(text=m.content)],
        )
        for m in messages
    ]


def function_calls(parts: Sequence[Part]) -> list[FunctionCallPart]:
    return [p for p in parts if isinstance(p, FunctionCallPart)]


def first_text(parts: Sequence[Part]) -> str | None:
    for part in parts:
        if isinstance(part, TextPart) and part.text:
            return part.text
    return None


# ---------------------------------------------------------------------------
# Conversation state
# ---------------------------------------------------------------------------


class Conversation:
    """
    Append-only transcript plus the last diagnostic string.

    Messages are only ever added; reset() is the one operation that replaces
    the whole sequence, leaving a single greeting behind.
    """

    def __init__(self, greeting: str = GREETING) -> None:
        self._messages: list[Message] = [Message(role="assistant", content=greeting)]
        self.diagnostic: str | None = None

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def append(self, message: Message) -> Message:
        self._messages.append(message)
        return message

    def reset(self, greeting: str = RESET_GREETING) -> Message:
        self._messages = [Message(role="assistant", content=greeting)]
        self.diagnostic = None
        return self._messages[0]


# ---------------------------------------------------------------------------
# Assistant
# ---------------------------------------------------------------------------


class Assistant:
    """
    Single-session orchestrator between an InferenceClient and a ToolExecutor.

    Example:
        assistant = Assistant(
            client=GeminiClient("https://…/functions/v1/gemini"),
            executor=ToolExecutor(SqliteWarehouseStore("warehouse.db")),
        )
        reply = assistant.submit("Barang apa yang stoknya paling banyak?")
    """

    def __init__(
        self,
        client: InferenceClient,
        executor: ToolExecutor,
        is_online: Callable[[], bool] = lambda: True,
        max_iterations: int = MAX_ITERATIONS,
    ) -> None:
        self._client = client
        self._executor = executor
        self._is_online = is_online
        self._max_iterations = max_iterations
        self.conversation = Conversation()
        self.busy = False
        self.backend_calls = 0

    @property
    def messages(self) -> tuple[Message, ...]:
        return self.conversation.messages

    @property
    def diagnostic(self) -> str | None:
        return self.conversation.diagnostic

    def reset(self) -> Message:
        greeting = self.conversation.reset()
        display.transcript_reset(greeting)
        return greeting

    # ------------------------------------------------------------------
    # Backend call
    # ------------------------------------------------------------------

    def _invoke(self, history: list[HistoryTurn], iteration: int) -> list[Part]:
        display.calling_backend(iteration)
        self.backend_calls += 1
        response = self._client.invoke(list(history), SYSTEM_INSTRUCTION, TOOL_DECLARATIONS)
        if not response.candidates:
            raise MalformedResponseError("Backend AI tidak mengembalikan kandidat jawaban.")
        return list(response.candidates[0].parts)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _run_loop(self) -> Message:
        history = messages_to_history(self.conversation.messages)
        state = LoopState(bound=self._max_iterations)

        parts = self._invoke(history, state.iteration)

        while function_calls(parts) and not state.exhausted:
            state.advance()
            calls = function_calls(parts)
            display.round_start(state.iteration, state.bound, len(calls))

            history.append(HistoryTurn(role="model", parts=parts))
            responses: list[Part] = [
                FunctionResponsePart(name=call.name, response=self._executor.execute(call))
                for call in calls
            ]
            history.append(HistoryTurn(role="tool", parts=responses))

            parts = self._invoke(history, state.iteration)

        if function_calls(parts) and state.exhausted:
            display.bound_reached(state.bound)

        text = first_text(parts)
        if text is not None:
            message = self.conversation.append(Message(role="assistant", content=text))
            display.assistant_message(message)
            return message

        message = self.conversation.append(Message(role="assistant", content=NO_TEXT_FALLBACK))
        display.no_text_answer(message)
        return message

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def submit(self, text: str) -> Message | None:
        """
        Run one user request to completion.

        Returns the assistant message appended for this request, or None when
        the loop was never entered (blank input or offline). Backend and
        store failures never escape: they become one apology message plus a
        diagnostic.
        """
        text = text.strip()
        if not text:
            return None
        if self.busy:
            display.busy()
            raise AssistantBusyError("A request is already in flight.")

        if not self._is_online():
            self.conversation.diagnostic = OFFLINE_DIAGNOSTIC
            display.offline(OFFLINE_DIAGNOSTIC)
            return None

        self.busy = True
        self.backend_calls = 0
        self.conversation.diagnostic = None
        self.conversation.append(Message(role="user", content=text))
        display.request_received(text)

        try:
            return self._run_loop()
        except Exception as exc:
            self.conversation.diagnostic = f"Masalah: {exc}"
            message = self.conversation.append(Message(role="assistant", content=APOLOGY))
            display.failure(message, self.conversation.diagnostic)
            return message
        finally:
            self.busy = False
