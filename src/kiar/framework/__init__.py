"""Pipeline framework: records, stages, sources, transformers, sinks and logging."""
