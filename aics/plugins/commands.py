"""Host API request schema - the closed set of operations plugins may ask the host for."""

from typing import Annotated, Any, Dict, Literal, Optional, Union, get_args

from pydantic import BaseModel, Field, TypeAdapter


class ReadFileRequest(BaseModel):
    op: Literal["workspace.read_file"] = "workspace.read_file"
    path: str = Field(..., min_length=1, description="Path relative to the workspace root")


class WriteFileRequest(BaseModel):
    op: Literal["workspace.write_file"] = "workspace.write_file"
    path: str = Field(..., min_length=1, description="Path relative to the workspace root")
    content: str


class ExecuteTerminalRequest(BaseModel):
    op: Literal["terminal.execute"] = "terminal.execute"
    command: str = Field(..., min_length=1, description="Shell command line")
    cwd: Optional[str] = Field(default=None, description="Working directory inside the workspace")
    timeout: Optional[float] = Field(default=None, gt=0, description="Seconds before the process is killed")


class NetworkRequest(BaseModel):
    op: Literal["network.request"] = "network.request"
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"] = "GET"
    url: str = Field(..., pattern=r"^https?://")
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = None
    timeout: Optional[float] = Field(default=None, gt=0)


class ClipboardReadRequest(BaseModel):
    op: Literal["clipboard.read"] = "clipboard.read"


class ClipboardWriteRequest(BaseModel):
    op: Literal["clipboard.write"] = "clipboard.write"
    text: str


class NotificationRequest(BaseModel):
    op: Literal["ui.notify"] = "ui.notify"
    message: str = Field(..., min_length=1)
    level: Literal["info", "warning", "error", "success"] = "info"


class AICompletionRequest(BaseModel):
    op: Literal["ai.complete"] = "ai.complete"
    prompt: str = Field(..., min_length=1)
    system_prompt: Optional[str] = None


class EditorOpenRequest(BaseModel):
    op: Literal["editor.open_file"] = "editor.open_file"
    path: str = Field(..., min_length=1, description="Path relative to the workspace root")


class EditorGetActiveRequest(BaseModel):
    op: Literal["editor.get_active"] = "editor.get_active"


class EditorSetTextRequest(BaseModel):
    op: Literal["editor.set_text"] = "editor.set_text"
    text: str


class EditorInsertTextRequest(BaseModel):
    op: Literal["editor.insert_text"] = "editor.insert_text"
    text: str


class EditorSetCursorRequest(BaseModel):
    op: Literal["editor.set_cursor"] = "editor.set_cursor"
    offset: int = Field(..., ge=0, description="Character offset into the active document")


HostRequest = Annotated[
    Union[
        ReadFileRequest,
        WriteFileRequest,
        ExecuteTerminalRequest,
        NetworkRequest,
        ClipboardReadRequest,
        ClipboardWriteRequest,
        NotificationRequest,
        AICompletionRequest,
        EditorOpenRequest,
        EditorGetActiveRequest,
        EditorSetTextRequest,
        EditorInsertTextRequest,
        EditorSetCursorRequest,
    ],
    Field(discriminator="op"),
]

_host_request_adapter = TypeAdapter(HostRequest)

# Concrete request classes, for isinstance checks
HOST_REQUEST_TYPES = get_args(get_args(HostRequest)[0])


def parse_host_request(payload: Dict[str, Any]) -> HostRequest:
    """Validate a dict payload into the matching request model.

    Raises:
        pydantic.ValidationError: On an unknown op or invalid fields
    """
    return _host_request_adapter.validate_python(payload)


class TerminalResult(BaseModel):
    exit_code: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False


class HttpResponse(BaseModel):
    status: int
    headers: Dict[str, str] = Field(default_factory=dict)
    body: str = ""


class EditorState(BaseModel):
    path: str
    language: str
    text: str
    cursor: int = 0
