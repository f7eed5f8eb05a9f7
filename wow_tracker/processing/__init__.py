"""Two-stage per-character processing: pipelines, queue workers, admin entry points."""
