# inference.py
# Boundary to the external text-generation backend.
#
# The assistant only sees InferenceClient.invoke() and the three error
# classes below. Both clients open their transport per call and hold no
# connection state between rounds.

import json
from typing import Protocol, Sequence

import httpx
import openai
from openai import OpenAI

from warehouse_assistant.models import (
    Candidate,
    FunctionCallPart,
    FunctionResponsePart,
    HistoryTurn,
    InferenceResponse,
    Part,
    TextPart,
    ToolDeclaration,
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class InferenceError(Exception):
    """Base class for every failure raised across the backend boundary."""


class BackendConnectionError(InferenceError):
    """Raised when the transport cannot reach the backend at all."""


class BackendInvocationError(InferenceError):
    """Raised when the backend answers with a structured failure."""


class MalformedResponseError(InferenceError):
    """Raised when a response carries no candidate. Usually missing credentials."""


EMPTY_RESPONSE = "Respon AI kosong. Periksa API Key pada konfigurasi backend AI."


class InferenceClient(Protocol):
    def invoke(
        self,
        history: Sequence[HistoryTurn],
        system_instruction: str,
        tools: Sequence[ToolDeclaration],
    ) -> InferenceResponse: ...


# ---------------------------------------------------------------------------
# Gemini-style wire contract
# ---------------------------------------------------------------------------

# Tool results travel back in a user-role turn on the wire.
_WIRE_ROLES = {"user": "user", "model": "model", "tool": "user"}


def part_to_wire(part: Part) -> dict:
    if isinstance(part, TextPart):
        return {"text": part.text}
    if isinstance(part, FunctionCallPart):
        return {"functionCall": {"name": part.name, "args": part.args}}
    return {"functionResponse": {"name": part.name, "response": part.response}}


def build_request_body(
    history: Sequence[HistoryTurn],
    system_instruction: str,
    tools: Sequence[ToolDeclaration],
) -> dict:
    return {
        "contents": [
            {"role": _WIRE_ROLES[turn.role], "parts": [part_to_wire(p) for p in turn.parts]}
            for turn in history
        ],
        "systemInstruction": system_instruction,
        "tools": [{"functionDeclarations": [t.to_wire() for t in tools]}],
    }


def parse_response_body(body: dict) -> InferenceResponse:
    """
    Convert a wire response into an InferenceResponse.

    Raises BackendInvocationError if the body carries an `error` object and
    MalformedResponseError if there is no candidate. Parts that are neither
    text nor a function call are dropped.
    """
    if not isinstance(body, dict):
        raise MalformedResponseError(EMPTY_RESPONSE)

    if body.get("error"):
        error = body["error"]
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise BackendInvocationError(message or "Backend AI mengembalikan error.")

    raw_candidates = body.get("candidates")
    if not raw_candidates:
        raise MalformedResponseError(EMPTY_RESPONSE)

    candidates: list[Candidate] = []
    for raw in raw_candidates:
        parts: list[Part] = []
        for raw_part in (raw.get("content") or {}).get("parts") or []:
            if raw_part.get("functionCall"):
                call = raw_part["functionCall"]
                parts.append(FunctionCallPart(name=call["name"], args=call.get("args") or {}))
            elif raw_part.get("text") is not None:
                parts.append(TextPart(text=raw_part["text"]))
        candidates.append(Candidate(parts=parts))
    return InferenceResponse(candidates=candidates)


class GeminiClient:
    """
    POSTs the Gemini-style wire body to an inference endpoint.

    The endpoint is normally a thin proxy in front of Gemini that accepts the
    system instruction as plain text and keeps the API key server-side.
    """

    def __init__(self, endpoint: str, api_key: str | None = None, timeout: float = 60.0,
                 transport: httpx.BaseTransport | None = None) -> None:
        self._endpoint = endpoint
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def invoke(
        self,
        history: Sequence[HistoryTurn],
        system_instruction: str,
        tools: Sequence[ToolDeclaration],
    ) -> InferenceResponse:
        body = build_request_body(history, system_instruction, tools)
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(self._endpoint, json=body, headers=headers)
        except httpx.TransportError as exc:
            raise BackendConnectionError(
                f"Gagal menghubungi server AI ({type(exc).__name__}). "
                "Pastikan endpoint inference sudah di-deploy."
            ) from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            detail = ""
            if isinstance(payload, dict) and payload.get("error"):
                error = payload["error"]
                detail = error.get("message", "") if isinstance(error, dict) else str(error)
            raise BackendInvocationError(
                f"Backend AI error {response.status_code}: {detail or response.reason_phrase}"
            )

        return parse_response_body(payload)


# ---------------------------------------------------------------------------
# OpenAI-compatible chat completions (OpenRouter by default)
# ---------------------------------------------------------------------------


def history_to_chat_messages(
    history: Sequence[HistoryTurn], system_instruction: str
) -> list[dict]:
    """
    Flatten HistoryTurns into chat-completion messages.

    FunctionCallParts get synthetic ids `call_<turn>_<index>`; the following
    tool turn reuses them in order, which is safe because responses are never
    reordered relative to their calls.
    """
    messages: list[dict] = [{"role": "system", "content": system_instruction}]
    pending_ids: list[str] = []

    for turn_index, turn in enumerate(history):
        if turn.role == "tool":
            for call_id, part in zip(pending_ids, turn.parts):
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": call_id,
                        "content": json.dumps(part.response, default=str),
                    }
                )
            pending_ids = []
            continue

        text = "\n".join(p.text for p in turn.parts if isinstance(p, TextPart))
        if turn.role == "user":
            messages.append({"role": "user", "content": text})
            continue

        calls = [p for p in turn.parts if isinstance(p, FunctionCallPart)]
        message: dict = {"role": "assistant", "content": text or None}
        if calls:
            pending_ids = [f"call_{turn_index}_{i}" for i in range(len(calls))]
            message["tool_calls"] = [
                {
                    "id": call_id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.args)},
                }
                for call_id, call in zip(pending_ids, calls)
            ]
        messages.append(message)

    return messages


def tools_to_chat_tools(tools: Sequence[ToolDeclaration]) -> list[dict]:
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.parameters.to_json_schema(),
            },
        }
        for t in tools
    ]


class OpenRouterClient:
    """InferenceClient over any OpenAI-compatible chat-completions endpoint."""

    def __init__(self, model: str, api_key: str | None,
                 base_url: str = "https://openrouter.ai/api/v1", timeout: float = 60.0) -> None:
        self._model = model
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout

    def _client(self) -> OpenAI:
        return OpenAI(base_url=self._base_url, api_key=self._api_key, timeout=self._timeout)

    def invoke(
        self,
        history: Sequence[HistoryTurn],
        system_instruction: str,
        tools: Sequence[ToolDeclaration],
    ) -> InferenceResponse:
        if not self._api_key:
            raise MalformedResponseError(EMPTY_RESPONSE)

        try:
            completion = self._client().chat.completions.create(
                model=self._model,
                messages=history_to_chat_messages(history, system_instruction),
                tools=tools_to_chat_tools(tools),
            )
        except openai.APIConnectionError as exc:
            raise BackendConnectionError(f"Gagal menghubungi server AI: {exc}") from exc
        except openai.APIError as exc:
            raise BackendInvocationError(f"Backend AI error: {exc}") from exc

        if not completion.choices:
            raise MalformedResponseError(EMPTY_RESPONSE)

        candidates: list[Candidate] = []
        for choice in completion.choices:
            parts: list[Part] = []
            if choice.message.content:
                parts.append(TextPart(text=choice.message.content))
            for tool_call in choice.message.tool_calls or []:
                try:
                    args = json.loads(tool_call.function.arguments or "{}")
                except json.JSONDecodeError:
                    args = {}
                if not isinstance(args, dict):
                    args = {}
                parts.append(FunctionCallPart(name=tool_call.function.name, args=args))
            candidates.append(Candidate(parts=parts))
        return InferenceResponse(candidates=candidates)
