"""Pydantic models for remote-relay tool requests and responses."""

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class ExecuteCommandInput(BaseModel):
    """Input for command execution in the persistent session."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra='forbid'
    )

    command: str = Field(
        ...,
        description="The bash command to execute",
        min_length=1,
        examples=["make test", "git status", "tail -n 50 build.log"]
    )
    timeout: Optional[int] = Field(
        default=None,
        ge=1,
        le=3_600_000,
        description="Timeout in milliseconds (default: 60000)"
    )


class ReadFileInput(BaseModel):
    """Input for reading a remote file."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra='forbid'
    )

    path: str = Field(
        ...,
        description="Path to the file (absolute or relative to working directory)",
        min_length=1
    )
    offset: Optional[int] = Field(
        default=None,
        ge=1,
        description="Line number to start reading from (1-indexed)"
    )
    limit: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum number of lines to read"
    )


class WriteFileInput(BaseModel):
    """Input for writing a remote file. Content is kept byte for byte."""
    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid'
    )

    path: str = Field(
        ...,
        description="Path to the file (absolute or relative to working directory)",
        min_length=1
    )
    content: str = Field(..., description="Content to write to the file")


class EditFileInput(BaseModel):
    """Input for a single exact string replacement."""
    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid'
    )

    path: str = Field(
        ...,
        description="Path to the file (absolute or relative to working directory)",
        min_length=1
    )
    old_string: str = Field(
        ...,
        description="The exact string to find and replace",
        min_length=1
    )
    new_string: str = Field(..., description="The string to replace it with")


class FindFilesInput(BaseModel):
    """Input for a filename glob search."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra='forbid'
    )

    pattern: str = Field(
        ...,
        description="Filename glob to match",
        min_length=1,
        examples=["*.py", "Makefile", "test_*.c"]
    )
    path: Optional[str] = Field(
        default=None,
        description="Directory to search in (default: working directory)"
    )


class SearchContentsInput(BaseModel):
    """Input for a recursive content search."""
    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid'
    )

    pattern: str = Field(
        ...,
        description="Regular expression pattern to search for",
        min_length=1
    )
    path: Optional[str] = Field(
        default=None,
        description="File or directory to search (default: working directory)"
    )
    include: Optional[str] = Field(
        default=None,
        description="File pattern to include (e.g., '*.ts')"
    )


class ChangeDirectoryInput(BaseModel):
    """Input for changing the remote working directory."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra='forbid'
    )

    path: str = Field(
        ...,
        description="Directory path to change to",
        min_length=1,
        examples=["/var/log", "src", "~"]
    )


class ListDirectoryInput(BaseModel):
    """Input for listing a remote directory."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        extra='forbid'
    )

    path: Optional[str] = Field(
        default=None,
        description="Directory to list (default: working directory)"
    )
    all: bool = Field(default=False, description="Include hidden files")
    long: bool = Field(default=False, description="Use long listing format")


class ToolResponse(BaseModel):
    """Text returned to the client, flagged when it reports an error."""
    text: str = Field(description="Human-readable result")
    is_error: bool = Field(default=False, description="Whether the tool call failed")
