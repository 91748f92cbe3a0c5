"""
CustomStage — runs a registered plugin.

Config::

    {"plugin": "dedupe", "options": {"key": "id"}}

Plugins are plain callables `(records, options) -> records` (sync or
async) registered at composition time.  This is also how data-quality,
catalog and lineage services are invoked from a pipeline.

A `script` with no registered runtime is not executed: the stage warns
and passes the batch through.
"""

from __future__ import annotations

import copy
import inspect
from typing import Any, Awaitable, Callable, Union

from etlflow.core.constants import TransformationKind
from etlflow.models.pipeline import Record, Transformation
from etlflow.pipeline.stages.base import StageResult, TransformationStage

PluginResult = Union[list[Record], Awaitable[list[Record]]]
Plugin = Callable[[list[Record], dict[str, Any]], PluginResult]


class CustomStage(TransformationStage):
    kind = TransformationKind.CUSTOM
    description = "Run a registered plugin"

    def __init__(self, plugins: dict[str, Plugin] | None = None) -> None:
        self._plugins: dict[str, Plugin] = dict(plugins or {})

    def register(self, name: str, plugin: Plugin) -> None:
        self._plugins[name] = plugin

    @property
    def plugin_names(self) -> list[str]:
        return sorted(self._plugins)

    async def apply(self, transformation: Transformation, batch: list[Record]) -> StageResult:
        config = transformation.config
        plugin_name = config.get("plugin")

        if plugin_name is None:
            if config.get("script"):
                return self._result(
                    list(batch),
                    warnings=["No runtime available for custom script, passing records through"],
                )
            return self._result(list(batch))

        plugin = self._plugins.get(plugin_name)
        if plugin is None:
            return self._result(
                list(batch),
                warnings=[f"Plugin '{plugin_name}' is not registered, passing records through"],
            )

        options = config.get("options") or {}
        result = plugin(copy.deepcopy(batch), dict(options))
        if inspect.isawaitable(result):
            result = await result

        if not isinstance(result, list):
            raise TypeError(f"Plugin '{plugin_name}' returned {type(result).__name__}, expected a list of records")

        return self._result(result, plugin=plugin_name)
