"""
Benchmark Models

Pydantic models for measurement options and per-task results.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BenchOptions(BaseModel):
    """Timing configuration for one benchmark run."""

    time_ms: float = Field(150.0, ge=0, description="Minimum measurement window (ms)")
    warmup_time_ms: float = Field(50.0, ge=0, description="Minimum warm-up window (ms)")
    warmup_iterations: int = Field(3, ge=0, description="Minimum warm-up iterations")
    iterations: int = Field(5, ge=1, description="Minimum measured iterations")
    throws: bool = Field(
        False, description="Propagate task errors out of the run instead of recording them"
    )


class SampleStatistics(BaseModel):
    """Aggregated statistics for one sample set."""

    samples: List[float] = Field(default_factory=list, description="Raw samples")
    mean: float = Field(0.0, description="Arithmetic mean")
    variance: float = Field(0.0, description="Sample variance")
    sd: float = Field(0.0, description="Standard deviation")
    sem: float = Field(0.0, description="Standard error of the mean")
    moe: float = Field(0.0, description="Margin of error (95%)")
    rme: float = Field(0.0, description="Relative margin of error (%)")
    min: float = Field(0.0, description="Minimum sample")
    max: float = Field(0.0, description="Maximum sample")
    p50: float = Field(0.0, description="50th percentile (median)")
    p75: float = Field(0.0, description="75th percentile")
    p99: float = Field(0.0, description="99th percentile")

    @property
    def count(self) -> int:
        return len(self.samples)


class TaskResult(BaseModel):
    """
    Outcome of one benchmark task.

    ``latency`` samples are milliseconds per iteration; ``throughput`` samples
    are operations per second derived from each latency sample.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    latency: Optional[SampleStatistics] = Field(None, description="Latency (ms)")
    throughput: Optional[SampleStatistics] = Field(None, description="Throughput (ops/s)")
    error: Optional[BaseException] = Field(None, description="Captured task error")
    runs: int = Field(0, description="Measured iterations completed")
    total_time_ms: float = Field(0.0, description="Wall time spent measuring (ms)")

    @property
    def sample_count(self) -> int:
        return self.latency.count if self.latency is not None else 0
