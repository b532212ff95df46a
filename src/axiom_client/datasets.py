"""
Axiom dataset operations

Thin 1:1 mappings of the dataset REST endpoints onto pydantic models.
"""

from datetime import timedelta
from typing import List, Optional, Union
from urllib.parse import quote

from pydantic import Field

from .errors import DecodingError
from .logging import dataset_logger
from .models import AxiomModel, parse_model
from .results import NullList, Timestamp
from .telemetry import trace_api_call
from .transport import Transport

DATASETS_PATH = "/v1/datasets"


class Dataset(AxiomModel):
    """An Axiom dataset."""
    name: str = Field(..., description="Unique name of the dataset")
    description: str = Field("", description="Description of the dataset")
    created_by: Optional[str] = Field(None, alias="who", description="ID of the user who created the dataset")
    created_at: Optional[Timestamp] = Field(None, alias="created", description="When the dataset was created")


class DatasetField(AxiomModel):
    """A field of a dataset."""
    name: str
    description: str = ""
    type: str = ""
    unit: str = ""
    hidden: bool = False


class DatasetInfo(AxiomModel):
    """Statistics of a dataset plus its fields."""
    name: str
    num_events: int = Field(0, alias="numEvents")
    num_fields: int = Field(0, alias="numFields")
    input_bytes: int = Field(0, alias="inputBytes")
    compressed_bytes: int = Field(0, alias="compressedBytes")
    min_time: Optional[Timestamp] = Field(None, alias="minTime")
    max_time: Optional[Timestamp] = Field(None, alias="maxTime")
    created_at: Optional[Timestamp] = Field(None, alias="created")
    fields: NullList(DatasetField) = Field(default_factory=list)


class TrimResult(AxiomModel):
    """Result of a trim operation."""
    blocks_deleted: int = Field(0, alias="numDeleted")


def _dataset_path(name: str) -> str:
    if not name:
        raise ValueError("dataset name must not be empty")
    return f"{DATASETS_PATH}/{quote(name, safe='')}"


def format_duration(max_duration: Union[timedelta, str]) -> str:
    """Render a trim duration the way the API expects it (`<seconds>s`)."""
    if isinstance(max_duration, str):
        return max_duration
    return f"{int(max_duration.total_seconds())}s"


class DatasetsClient:
    """Dataset management calls, sharing the client's API transport."""

    def __init__(self, transport: Transport):
        self.transport = transport
        self._tracer = transport._tracer

    @trace_api_call("datasets.list")
    async def list(self) -> List[Dataset]:
        response = await self.transport.request("GET", DATASETS_PATH)
        body = response.json()
        if body is None:
            body = []
        if not isinstance(body, list):
            raise DecodingError(f"Expected array of datasets, got {type(body).__name__}")
        datasets = [parse_model(Dataset, item, f"[{i}]") for i, item in enumerate(body)]
        dataset_logger.debug(f"listed datasets | count:{len(datasets)}")
        return datasets

    @trace_api_call("datasets.get")
    async def get(self, dataset_name: str) -> Dataset:
        response = await self.transport.request("GET", _dataset_path(dataset_name))
        return parse_model(Dataset, response.json())

    @trace_api_call("datasets.create")
    async def create(self, dataset_name: str, description: str = "") -> Dataset:
        if not dataset_name:
            raise ValueError("dataset name must not be empty")
        response = await self.transport.request(
            "POST", DATASETS_PATH, json_data={"name": dataset_name, "description": description}
        )
        dataset_logger.info(f"created dataset | name:{dataset_name}")
        return parse_model(Dataset, response.json())

    @trace_api_call("datasets.update")
    async def update(self, dataset_name: str, description: str) -> Dataset:
        response = await self.transport.request(
            "PUT", _dataset_path(dataset_name), json_data={"description": description}
        )
        return parse_model(Dataset, response.json())

    @trace_api_call("datasets.delete")
    async def delete(self, dataset_name: str) -> None:
        await self.transport.request("DELETE", _dataset_path(dataset_name))
        dataset_logger.info(f"deleted dataset | name:{dataset_name}")

    @trace_api_call("datasets.trim")
    async def trim(self, dataset_name: str, max_duration: Union[timedelta, str]) -> TrimResult:
        """
        Delete events older than `max_duration` from a dataset.

        Args:
            dataset_name: Dataset to trim
            max_duration: Age limit, a timedelta or an API duration string like "3600s"
        """
        response = await self.transport.request(
            "POST", f"{_dataset_path(dataset_name)}/trim",
            json_data={"maxDuration": format_duration(max_duration)}
        )
        return parse_model(TrimResult, response.json())

    @trace_api_call("datasets.info")
    async def info(self, dataset_name: str) -> DatasetInfo:
        response = await self.transport.request("GET", f"{_dataset_path(dataset_name)}/info")
        return parse_model(DatasetInfo, response.json())
