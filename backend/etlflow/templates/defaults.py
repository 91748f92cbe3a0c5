"""Built-in pipeline templates."""

from __future__ import annotations

from etlflow.core.constants import AggregateFunction, ParameterType
from etlflow.models.template import PipelineTemplate, TemplateParameter

_MONITORING = {"enabled": True, "alerts": [], "metrics": [], "thresholds": []}

SIMPLE_COPY = PipelineTemplate(
    id="simple_copy",
    name="Simple Data Copy",
    description="Copy data from one source to another with basic filtering",
    category="basic",
    template={
        "source": {
            "type": "data_source",
            "config": {"dataSourceId": "{{sourceDataSourceId}}"},
        },
        "transformations": [
            {
                "name": "Basic Filter",
                "kind": "filter",
                "config": {"conditions": []},
                "order": 1,
                "enabled": True,
            },
        ],
        "destination": {
            "type": "data_source",
            "config": {"dataSourceId": "{{destinationDataSourceId}}"},
            "mode": "append",
        },
        "metadata": {
            "author": "system",
            "tags": ["basic", "copy"],
            "dependencies": [],
            "environment": "development",
            "monitoring": _MONITORING,
        },
    },
    parameters=[
        TemplateParameter(
            name="sourceDataSourceId",
            type=ParameterType.SELECT,
            required=True,
            description="Source data source",
        ),
        TemplateParameter(
            name="destinationDataSourceId",
            type=ParameterType.SELECT,
            required=True,
            description="Destination data source",
        ),
    ],
)

DATA_AGGREGATION = PipelineTemplate(
    id="data_aggregation",
    name="Data Aggregation Pipeline",
    description="Aggregate data with grouping and calculations",
    category="analytics",
    template={
        "source": {
            "type": "data_source",
            "config": {"dataSourceId": "{{sourceDataSourceId}}"},
        },
        "transformations": [
            {
                "name": "Data Aggregation",
                "kind": "aggregate",
                "config": {
                    "aggregations": [
                        {
                            "column": "{{aggregateColumn}}",
                            "function": "{{aggregateFunction}}",
                            "groupBy": "{{groupByColumns}}",
                        },
                    ],
                },
                "order": 1,
                "enabled": True,
            },
        ],
        "destination": {
            "type": "data_source",
            "config": {"dataSourceId": "{{destinationDataSourceId}}"},
            "mode": "replace",
        },
        "metadata": {
            "author": "system",
            "tags": ["analytics", "aggregation"],
            "dependencies": [],
            "environment": "development",
            "monitoring": _MONITORING,
        },
    },
    parameters=[
        TemplateParameter(
            name="sourceDataSourceId",
            type=ParameterType.SELECT,
            required=True,
            description="Source data source",
        ),
        TemplateParameter(
            name="destinationDataSourceId",
            type=ParameterType.SELECT,
            required=True,
            description="Destination data source",
        ),
        TemplateParameter(
            name="groupByColumns",
            type=ParameterType.STRING,
            required=True,
            description="Comma-separated list of columns to group by (only the first is used)",
        ),
        TemplateParameter(
            name="aggregateColumn",
            type=ParameterType.STRING,
            default="value",
            description="Column to aggregate",
        ),
        TemplateParameter(
            name="aggregateFunction",
            type=ParameterType.SELECT,
            default=str(AggregateFunction.SUM),
            options=[str(f) for f in AggregateFunction],
            description="Aggregate function",
        ),
    ],
)

DEFAULT_TEMPLATES = [SIMPLE_COPY, DATA_AGGREGATION]
