from unittest.mock import MagicMock

import pytest

from warehouse_assistant.assistant import (
    APOLOGY,
    GREETING,
    MAX_ITERATIONS,
    NO_TEXT_FALLBACK,
    OFFLINE_DIAGNOSTIC,
    RESET_GREETING,
    SYSTEM_INSTRUCTION,
    Assistant,
    AssistantBusyError,
    Conversation,
    messages_to_history,
)
from warehouse_assistant.inference import (
    BackendConnectionError,
    BackendInvocationError,
    MalformedResponseError,
)
from warehouse_assistant.models import (
    Candidate,
    FunctionCallPart,
    FunctionResponsePart,
    InferenceResponse,
    LoopState,
    Message,
    TextPart,
)
from warehouse_assistant.store import StoreError
from warehouse_assistant.tools import NOT_FOUND_IN_DATABASE, TOOL_DECLARATIONS, ToolExecutor


def _text(text):
    return InferenceResponse(candidates=[Candidate(parts=[TextPart(text=text)])])


def _calls(*calls):
    return InferenceResponse(
        candidates=[Candidate(parts=[FunctionCallPart(name=n, args=a) for n, a in calls])]
    )


def _assistant(responses, store=None, **kwargs):
    client = MagicMock()
    client.invoke.side_effect = responses
    executor = ToolExecutor(store or MagicMock())
    return Assistant(client=client, executor=executor, **kwargs), client


def _history_of(client, call_index):
    # Each invoke() receives its own copy of the history at call time.
    return client.invoke.call_args_list[call_index].args[0]


# ---------------------------------------------------------------------------
# Conversation state
# ---------------------------------------------------------------------------


def test_conversation_starts_with_greeting():
    conversation = Conversation()
    assert conversation.messages == (Message(role="assistant", content=GREETING),)
    assert conversation.diagnostic is None


def test_conversation_reset_replaces_transcript_and_diagnostic():
    conversation = Conversation()
    conversation.append(Message(role="user", content="halo"))
    conversation.diagnostic = "Masalah: boom"

    conversation.reset()

    assert conversation.messages == (Message(role="assistant", content=RESET_GREETING),)
    assert conversation.diagnostic is None


def test_messages_are_frozen():
    message = Message(role="user", content="halo")
    with pytest.raises(Exception):
        message.content = "edited"


def test_messages_to_history_maps_assistant_to_model():
    history = messages_to_history(
        [Message(role="assistant", content="hi"), Message(role="user", content="stok?")]
    )
    assert [t.role for t in history] == ["model", "user"]
    assert history[1].parts == [TextPart(text="stok?")]


def test_loop_state_rejects_iteration_past_bound():
    with pytest.raises(ValueError):
        LoopState(iteration=6, bound=5)


# ---------------------------------------------------------------------------
# Direct answers
# ---------------------------------------------------------------------------


def test_direct_text_answer():
    assistant, client = _assistant([_text("Halo juga!")])

    reply = assistant.submit("halo")

    assert reply == Message(role="assistant", content="Halo juga!")
    assert [m.role for m in assistant.messages] == ["assistant", "user", "assistant"]
    assert assistant.backend_calls == 1
    args = client.invoke.call_args.args
    assert args[1] == SYSTEM_INSTRUCTION
    assert args[2] == TOOL_DECLARATIONS


def test_blank_input_is_ignored():
    assistant, client = _assistant([])
    assert assistant.submit("   ") is None
    client.invoke.assert_not_called()
    assert len(assistant.messages) == 1


def test_busy_guard_refuses_second_submission():
    assistant, client = _assistant([_text("x")])
    assistant.busy = True
    with pytest.raises(AssistantBusyError):
        assistant.submit("stok?")
    client.invoke.assert_not_called()


# ---------------------------------------------------------------------------
# Tool rounds
# ---------------------------------------------------------------------------


def test_scenario_a_top_stocks_without_limit():
    store = MagicMock()
    store.top_stocks.return_value = [
        {"name": f"Item {i}", "stock": 100 - i, "unit": "pcs"} for i in range(5)
    ]
    assistant, client = _assistant(
        [_calls(("get_top_stocks", {})), _text("| Barang | Stok |\n|---|---|\n| Item 0 | 100 |")],
        store=store,
    )

    reply = assistant.submit("Barang apa yang stoknya paling banyak?")

    store.top_stocks.assert_called_once_with(5)
    assert reply.content.startswith("| Barang | Stok |")
    assert assistant.messages[-1] == reply
    assert assistant.backend_calls == 2

    history = _history_of(client, 1)
    assert [t.role for t in history] == ["model", "user", "model", "tool"]
    tool_turn = history[-1]
    assert len(tool_turn.parts) == 1
    assert isinstance(tool_turn.parts[0], FunctionResponsePart)
    assert tool_turn.parts[0].name == "get_top_stocks"
    assert tool_turn.parts[0].response["limit"] == 5
    assert len(tool_turn.parts[0].response["items"]) == 5


def test_calls_in_one_round_run_in_order_and_pair_with_responses():
    store = MagicMock()
    store.find_materials.return_value = []
    store.top_stocks.return_value = []
    assistant, client = _assistant(
        [
            _calls(("search_materials", {"keyword": "baut"}), ("get_top_stocks", {"limit": 2})),
            _text("done"),
        ],
        store=store,
    )

    assistant.submit("cari baut dan stok teratas")

    history = _history_of(client, 1)
    model_turn, tool_turn = history[-2], history[-1]
    assert [p.name for p in model_turn.parts] == ["search_materials", "get_top_stocks"]
    assert [p.name for p in tool_turn.parts] == ["search_materials", "get_top_stocks"]


def test_not_found_is_fed_back_and_loop_continues():
    store = MagicMock()
    store.find_materials.return_value = []
    assistant, client = _assistant(
        [
            _calls(("check_stock_per_location", {"item_name": "zzz-no-such-item"})),
            _text("Barang tersebut tidak ada di database."),
        ],
        store=store,
    )

    reply = assistant.submit("di mana zzz-no-such-item?")

    assert reply.content == "Barang tersebut tidak ada di database."
    tool_turn = _history_of(client, 1)[-1]
    assert tool_turn.parts[0].response == {"error": NOT_FOUND_IN_DATABASE}
    assert assistant.diagnostic is None


def test_unknown_tool_does_not_abort():
    assistant, client = _assistant([_calls(("drop_tables", {})), _text("maaf")])
    reply = assistant.submit("hapus semua")
    assert reply.content == "maaf"
    assert _history_of(client, 1)[-1].parts[0].response == {"error": "unknown function"}


def test_non_finite_limit_does_not_abort():
    store = MagicMock()
    store.top_stocks.return_value = []
    assistant, client = _assistant(
        [_calls(("get_top_stocks", {"limit": float("inf")})), _text("ok")], store=store
    )

    assert assistant.submit("stok tertinggi?").content == "ok"
    assert assistant.diagnostic is None
    assert _history_of(client, 1)[-1].parts[0].response["limit"] == 5


def test_first_text_part_wins_after_tool_round():
    store = MagicMock()
    store.top_stocks.return_value = []
    final = InferenceResponse(
        candidates=[
            Candidate(
                parts=[
                    FunctionCallPart(name="get_top_stocks", args={}),
                    TextPart(text="jawaban pertama"),
                    TextPart(text="jawaban kedua"),
                ]
            )
        ]
    )
    # Bound 1: the second response still asks for a tool but its text is used.
    assistant, _ = _assistant([_calls(("get_top_stocks", {})), final], store=store, max_iterations=1)
    assert assistant.submit("stok?").content == "jawaban pertama"


def test_scenario_c_bound_stops_at_five_rounds():
    store = MagicMock()
    store.top_stocks.return_value = []
    responses = [_calls(("get_top_stocks", {})) for _ in range(MAX_ITERATIONS + 1)]
    assistant, client = _assistant(responses, store=store)

    reply = assistant.submit("loop terus")

    assert client.invoke.call_count == MAX_ITERATIONS + 1
    assert assistant.backend_calls == 6
    assert store.top_stocks.call_count == MAX_ITERATIONS
    assert reply.content == NO_TEXT_FALLBACK
    assert [m.role for m in assistant.messages] == ["assistant", "user", "assistant"]


def test_empty_parts_yield_fallback():
    assistant, _ = _assistant([InferenceResponse(candidates=[Candidate(parts=[])])])
    assert assistant.submit("halo").content == NO_TEXT_FALLBACK


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


def test_scenario_b_offline_makes_no_backend_call():
    assistant, client = _assistant([_text("never")], is_online=lambda: False)
    before = assistant.messages

    assert assistant.submit("stok?") is None

    client.invoke.assert_not_called()
    assert assistant.messages == before
    assert assistant.diagnostic == OFFLINE_DIAGNOSTIC


@pytest.mark.parametrize(
    "error",
    [
        BackendConnectionError("Gagal menghubungi server AI"),
        BackendInvocationError("Backend AI error 500"),
        MalformedResponseError("Respon AI kosong"),
    ],
)
def test_backend_errors_append_exactly_one_apology(error):
    assistant, _ = _assistant([error])

    reply = assistant.submit("stok?")

    assert reply.content == APOLOGY
    assert [m.role for m in assistant.messages] == ["assistant", "user", "assistant"]
    assert assistant.messages[1].content == "stok?"
    assert assistant.diagnostic == f"Masalah: {error}"
    assert assistant.busy is False


def test_response_without_candidates_is_malformed():
    assistant, _ = _assistant([InferenceResponse(candidates=[])])
    reply = assistant.submit("stok?")
    assert reply.content == APOLOGY
    assert "kandidat" in assistant.diagnostic


def test_failure_mid_loop_keeps_prior_transcript():
    store = MagicMock()
    store.top_stocks.return_value = []
    assistant, _ = _assistant(
        [_text("pertama"), _calls(("get_top_stocks", {})), BackendConnectionError("putus")],
        store=store,
    )
    assistant.submit("satu")
    assistant.submit("dua")

    contents = [m.content for m in assistant.messages]
    assert contents == [GREETING, "satu", "pertama", "dua", APOLOGY]


def test_top_stocks_store_failure_is_caught_at_the_top():
    store = MagicMock()
    store.top_stocks.side_effect = StoreError("timeout")
    assistant, client = _assistant([_calls(("get_top_stocks", {}))], store=store)

    reply = assistant.submit("stok tertinggi?")

    assert reply.content == APOLOGY
    assert assistant.diagnostic == "Masalah: timeout"
    assert client.invoke.call_count == 1


def test_new_request_clears_previous_diagnostic():
    assistant, _ = _assistant([BackendConnectionError("putus"), _text("ok")])
    assistant.submit("satu")
    assert assistant.diagnostic is not None
    assistant.submit("dua")
    assert assistant.diagnostic is None


def test_reset_after_failure():
    assistant, _ = _assistant([BackendConnectionError("putus")])
    assistant.submit("satu")
    assistant.reset()
    assert assistant.messages == (Message(role="assistant", content=RESET_GREETING),)
    assert assistant.diagnostic is None
