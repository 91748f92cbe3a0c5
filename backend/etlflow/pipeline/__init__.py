"""
Pipeline engine package — stages, adapters, dataset catalog and the
execution engine that runs source → transformations → destination.

Import the engine from `etlflow.pipeline.engine`; this package init stays
free of heavy imports because the domain models depend on
`etlflow.pipeline.errors`.
"""
