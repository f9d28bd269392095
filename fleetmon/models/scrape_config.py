"""Prometheus configuration models for the generated scrape config."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StaticTarget(BaseModel):
    """One static_configs entry: a target list plus labels."""

    targets: List[str] = Field(..., description="host:port addresses")
    labels: Optional[Dict[str, str]] = None


class ScrapeJob(BaseModel):
    """A scrape_configs job."""

    job_name: str
    scrape_interval: Optional[str] = None
    metrics_path: Optional[str] = None
    static_configs: List[StaticTarget] = Field(default_factory=list)

    @property
    def targets(self) -> List[str]:
        return [target for entry in self.static_configs for target in entry.targets]


class GlobalConfig(BaseModel):
    scrape_interval: str = "15s"
    evaluation_interval: str = "15s"
    external_labels: Dict[str, str] = Field(default_factory=dict)


class PrometheusConfig(BaseModel):
    """Complete Prometheus configuration written by ``generate-config``."""

    model_config = ConfigDict(populate_by_name=True)

    global_config: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    rule_files: List[str] = Field(default_factory=list)
    alerting: Dict[str, Any] = Field(default_factory=dict)
    scrape_configs: List[ScrapeJob] = Field(default_factory=list)

    def job(self, job_name: str) -> Optional[ScrapeJob]:
        for job in self.scrape_configs:
            if job.job_name == job_name:
                return job
        return None

    def to_document(self) -> Dict[str, Any]:
        """Plain mapping in Prometheus key order, ready for YAML output."""
        return self.model_dump(by_alias=True, exclude_none=True)
