# models.py
# Data contracts for the warehouse assistant.
# No business logic lives here: pure schema and validation.

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------


class Message(BaseModel):
    """One entry of the user-visible transcript. Never edited once appended."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


# ---------------------------------------------------------------------------
# Parts and history turns
# ---------------------------------------------------------------------------


class TextPart(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class FunctionCallPart(BaseModel):
    """A backend request to run one registered tool."""

    kind: Literal["function_call"] = "function_call"
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class FunctionResponsePart(BaseModel):
    """The tool result paired with a FunctionCallPart of the same name."""

    kind: Literal["function_response"] = "function_response"
    name: str
    response: dict[str, Any]


Part = Annotated[
    Union[TextPart, FunctionCallPart, FunctionResponsePart],
    Field(discriminator="kind"),
]


class HistoryTurn(BaseModel):
    """A role-tagged turn of the per-request history sent to the backend."""

    role: Literal["user", "model", "tool"]
    parts: list[Part]


class Candidate(BaseModel):
    parts: list[Part] = Field(default_factory=list)


class InferenceResponse(BaseModel):
    candidates: list[Candidate] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Tool declarations
# ---------------------------------------------------------------------------


class ParameterField(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["string", "number"]
    description: str


class ParameterSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    properties: dict[str, ParameterField]
    required: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _required_are_declared(self) -> "ParameterSchema":
        unknown = [name for name in self.required if name not in self.properties]
        if unknown:
            raise ValueError(f"Required fields not declared: {unknown}")
        return self

    def to_wire(self) -> dict:
        """Gemini function-declaration form (upper-case type names)."""
        schema: dict[str, Any] = {
            "type": "OBJECT",
            "properties": {
                name: {"type": field.type.upper(), "description": field.description}
                for name, field in self.properties.items()
            },
        }
        if self.required:
            schema["required"] = list(self.required)
        return schema

    def to_json_schema(self) -> dict:
        return {
            "type": "object",
            "properties": {
                name: {"type": field.type, "description": field.description}
                for name, field in self.properties.items()
            },
            "required": list(self.required),
        }


class ToolDeclaration(BaseModel):
    """Static metadata describing one callable tool to the backend."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: ParameterSchema

    def to_wire(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters.to_wire(),
        }


# ---------------------------------------------------------------------------
# Tool arguments, one typed record per tool.
# Numeric names from the backend ("keyword": 123) are searched as text.
# ---------------------------------------------------------------------------


class SearchMaterialsArgs(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    keyword: str = Field(..., min_length=1)


class CheckStockPerLocationArgs(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    item_name: str = Field(..., min_length=1)


class GetTopStocksArgs(BaseModel):
    # Raw value; resolved to an int (default 5) by the executor.
    limit: Any = None


class AnalyzeMaterialFlowArgs(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    item_name: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Loop bookkeeping
# ---------------------------------------------------------------------------


class LoopState(BaseModel):
    """Round counter for one request. Holds 0 <= iteration <= bound."""

    model_config = ConfigDict(validate_assignment=True)

    iteration: int = Field(default=0, ge=0)
    bound: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _within_bound(self) -> "LoopState":
        if self.iteration > self.bound:
            raise ValueError(f"iteration {self.iteration} exceeds bound {self.bound}")
        return self

    @property
    def exhausted(self) -> bool:
        return self.iteration == self.bound

    def advance(self) -> None:
        self.iteration += 1
