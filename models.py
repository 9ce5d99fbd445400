"""
Pydantic Models

Configuration and request/response models for running declarative
sequence pipelines.
"""

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(funcName)s:%(lineno)d] - %(message)s'


class OperationType(str, Enum):
    """Combinators that can be configured from plain data"""
    REMOVE = "remove"
    MATCH = "match"
    MATCH_TEXT = "match_text"
    DUPLICATES = "duplicates"
    DEDUPLICATE = "deduplicate"
    REPLACE_TABLE = "replace_table"
    ERASE = "erase"


class TerminalType(str, Enum):
    """How a pipeline is finally driven"""
    COLLECT = "collect"
    COUNT = "count"
    SUM = "sum"
    IS_EMPTY = "is_empty"
    HASH = "hash"


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = Field(
        "INFO",
        description="Log level name"
    )
    format: str = Field(
        DEFAULT_LOG_FORMAT,
        description="Log record format"
    )
    log_file: Optional[str] = Field(
        None,
        description="Also write log records to this file"
    )

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Validate the level is a known logging level name"""
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level


class OperationSpec(BaseModel):
    """A single combinator in a declarative pipeline"""
    model_config = ConfigDict(extra="forbid")

    type: OperationType = Field(..., description="Combinator to apply")
    pattern: Optional[str] = Field(
        None,
        description="Regular expression for 'match'",
        examples=["a.*e"]
    )
    literal: Optional[str] = Field(
        None,
        description="Exact text for 'match_text'"
    )
    values: Optional[List[Any]] = Field(
        None,
        description="Values to exclude for 'remove'"
    )
    table: Optional[Dict[Any, Any]] = Field(
        None,
        description="Replacement table for 'replace_table'"
    )

    @field_validator('pattern')
    @classmethod
    def validate_pattern(cls, v):
        """Validate the pattern compiles"""
        if v is None:
            return v
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid regular expression {v!r}: {e}")
        return v

    @model_validator(mode='after')
    def validate_parameters(self):
        """Validate the parameters the operation type needs are present"""
        required = {
            OperationType.REMOVE: 'values',
            OperationType.MATCH: 'pattern',
            OperationType.MATCH_TEXT: 'literal',
            OperationType.REPLACE_TABLE: 'table',
        }
        field_name = required.get(self.type)
        if field_name is not None and getattr(self, field_name) is None:
            raise ValueError(f"Operation '{self.type.value}' requires '{field_name}'")
        return self


class PipelineRequest(BaseModel):
    """Request to build and drive a pipeline over in-memory data"""
    data: List[Any] = Field(..., description="Source elements")
    operations: List[OperationSpec] = Field(
        default_factory=list,
        description="Combinators applied in order"
    )
    terminal: TerminalType = Field(
        TerminalType.COLLECT,
        description="Terminal operation"
    )
    measure: bool = Field(
        False,
        description="Record timing and memory for the run"
    )


class PerformanceInfo(BaseModel):
    """Timing and memory for one pipeline run"""
    operation: str = Field(..., description="Operation label")
    processing_time_ms: float = Field(..., ge=0)
    memory_usage_mb: float = Field(..., description="Peak traced allocation", ge=0)
    rss_mb: Optional[float] = Field(None, description="Process resident set size", ge=0)
    input_size: int = Field(..., ge=0)
    output_size: Optional[int] = Field(None, ge=0)


class PipelineResult(BaseModel):
    """Result of running a pipeline"""
    ok: bool = Field(True, description="Whether the run succeeded")
    result: Any = Field(None, description="Terminal output")
    operations_applied: List[OperationType] = Field(default_factory=list)
    terminal: TerminalType = Field(..., description="Terminal operation used")
    error: Optional[str] = Field(None, description="Error message when ok is False")
    performance: Optional[PerformanceInfo] = None
    generated_at: datetime = Field(default_factory=datetime.now)
