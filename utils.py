"""
Utility functions for the sequence engine

Logging setup, performance measurement, and a runner for declarative
pipelines built from the data-configurable combinators.
"""

import gc
import logging
import os
import sys
import time
import tracemalloc
from typing import Any, Dict, Iterable, List, Optional, Union

import psutil

from models import (
    LoggingConfig,
    OperationSpec,
    OperationType,
    PerformanceInfo,
    PipelineRequest,
    PipelineResult,
    TerminalType,
)
from sequencer import Sequence, as_sequence


# ---------- Logging Setup ----------

def setup_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Setup logging for the sequence engine"""
    config = config or LoggingConfig()
    handlers = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))

    logging.basicConfig(
        level=config.level,
        format=config.format,
        handlers=handlers
    )
    return logging.getLogger('sequencer')


logger = logging.getLogger('sequencer.pipeline')


# ---------- Performance Metrics ----------

# Global performance tracking
_performance_metrics = {
    "operations": [],
    "total_time_ms": 0.0,
    "total_memory_mb": 0.0,
    "operation_count": 0
}


def _rss_mb() -> float:
    return psutil.Process(os.getpid()).memory_info().rss / 1024 / 1024


def _record(performance_info: Dict[str, Any]):
    _performance_metrics["operations"].append(performance_info)
    _performance_metrics["total_time_ms"] += performance_info["execution_time_ms"]
    _performance_metrics["total_memory_mb"] += performance_info["memory_usage_mb"]
    _performance_metrics["operation_count"] += 1


def measure_performance(operation_name: str, func, *args, **kwargs) -> Dict[str, Any]:
    """Measure a function call with timing and memory tracking; the return value is under 'result'"""
    started_trace = not tracemalloc.is_tracing()
    if started_trace:
        tracemalloc.start()
    gc.collect()
    start_time = time.perf_counter()

    try:
        result = func(*args, **kwargs)

        execution_time_ms = (time.perf_counter() - start_time) * 1000
        _, peak = tracemalloc.get_traced_memory()

        performance_info = {
            "operation": operation_name,
            "execution_time_ms": execution_time_ms,
            "memory_usage_mb": peak / 1024 / 1024,
            "rss_mb": _rss_mb(),
            "success": True,
            "result_size": len(result) if hasattr(result, "__len__") else None,
            "timestamp": time.time()
        }
        _record(performance_info)
        return {**performance_info, "result": result}

    except Exception as e:
        execution_time_ms = (time.perf_counter() - start_time) * 1000
        _, peak = tracemalloc.get_traced_memory()

        _record({
            "operation": operation_name,
            "execution_time_ms": execution_time_ms,
            "memory_usage_mb": peak / 1024 / 1024,
            "success": False,
            "error": str(e),
            "timestamp": time.time()
        })
        logger.error(f"Operation '{operation_name}' failed after {execution_time_ms:.3f}ms: {e}")
        raise

    finally:
        if started_trace:
            tracemalloc.stop()


def get_performance_summary() -> Dict[str, Any]:
    """Get summary of all performance metrics"""
    if _performance_metrics["operation_count"] == 0:
        return {
            "total_operations": 0,
            "total_time_ms": 0.0,
            "total_memory_mb": 0.0,
            "avg_time_ms": 0.0,
            "avg_memory_mb": 0.0
        }

    return {
        "total_operations": _performance_metrics["operation_count"],
        "total_time_ms": _performance_metrics["total_time_ms"],
        "total_memory_mb": _performance_metrics["total_memory_mb"],
        "avg_time_ms": _performance_metrics["total_time_ms"] / _performance_metrics["operation_count"],
        "avg_memory_mb": _performance_metrics["total_memory_mb"] / _performance_metrics["operation_count"]
    }


def clear_performance_metrics():
    """Clear all performance metrics"""
    global _performance_metrics
    _performance_metrics = {
        "operations": [],
        "total_time_ms": 0.0,
        "total_memory_mb": 0.0,
        "operation_count": 0
    }


# ---------- Declarative Pipelines ----------

def apply_operation(seq: Sequence, op: OperationSpec) -> Sequence:
    """Apply one configured combinator to seq"""
    if op.type == OperationType.REMOVE:
        return seq.remove(Sequence.of(op.values))
    elif op.type == OperationType.MATCH:
        return seq.match(op.pattern)
    elif op.type == OperationType.MATCH_TEXT:
        return seq.match_text(op.literal)
    elif op.type == OperationType.DUPLICATES:
        return seq.duplicates()
    elif op.type == OperationType.DEDUPLICATE:
        return seq.deduplicate()
    elif op.type == OperationType.REPLACE_TABLE:
        return seq.replace_table(op.table)
    elif op.type == OperationType.ERASE:
        return seq.erase()
    raise ValueError(f"Unknown operation: {op.type}")


def build_pipeline(source: Union[Sequence, Iterable], operations: List[OperationSpec]) -> Sequence:
    """Compose the configured combinators over source without driving it"""
    seq = as_sequence(source)
    for op in operations:
        seq = apply_operation(seq, op)
    return seq


def run_terminal(seq: Sequence, terminal: TerminalType) -> Any:
    if terminal == TerminalType.COLLECT:
        return seq.to_list()
    elif terminal == TerminalType.COUNT:
        return seq.count()
    elif terminal == TerminalType.SUM:
        return seq.sum()
    elif terminal == TerminalType.IS_EMPTY:
        return seq.is_empty()
    elif terminal == TerminalType.HASH:
        return seq.hashed().to_list()
    raise ValueError(f"Unknown terminal: {terminal}")


def run_pipeline(request: Union[PipelineRequest, Dict[str, Any]]) -> PipelineResult:
    """
    Build and drive a declarative pipeline.

    Invalid requests raise pydantic.ValidationError. Failures while driving
    the pipeline are reported in the result's `error` field.
    """
    if not isinstance(request, PipelineRequest):
        request = PipelineRequest.model_validate(request)

    operations_applied = [op.type for op in request.operations]
    label = "+".join(op.value for op in operations_applied) or "identity"
    logger.info(f"Running pipeline '{label}' -> {request.terminal.value} over {len(request.data)} elements")

    start_time = time.perf_counter()
    started_trace = request.measure and not tracemalloc.is_tracing()
    if started_trace:
        tracemalloc.start()
    if request.measure:
        gc.collect()

    try:
        seq = build_pipeline(request.data, request.operations)
        result = run_terminal(seq, request.terminal)
    except Exception as e:
        logger.error(f"Pipeline '{label}' failed: {e}", exc_info=True)
        return PipelineResult(
            ok=False,
            operations_applied=operations_applied,
            terminal=request.terminal,
            error=str(e)
        )
    finally:
        if request.measure:
            _, peak = tracemalloc.get_traced_memory()
        if started_trace:
            tracemalloc.stop()

    performance = None
    if request.measure:
        performance = PerformanceInfo(
            operation=f"pipeline_{label}_{request.terminal.value}",
            processing_time_ms=(time.perf_counter() - start_time) * 1000,
            memory_usage_mb=peak / 1024 / 1024,
            rss_mb=_rss_mb(),
            input_size=len(request.data),
            output_size=len(result) if isinstance(result, list) else None
        )

    return PipelineResult(
        result=result,
        operations_applied=operations_applied,
        terminal=request.terminal,
        performance=performance
    )


# ---------- Text Helpers ----------

def select_matching(values: Iterable, pattern) -> List[Any]:
    """Return the values whose text matches pattern"""
    return Sequence.of(values).match(pattern).to_list()


def remove_matching(values: Iterable, pattern) -> List[Any]:
    """Return the values whose text does not match pattern"""
    values = list(values)
    source = Sequence.of(values)
    return source.remove(source.match(pattern)).to_list()
