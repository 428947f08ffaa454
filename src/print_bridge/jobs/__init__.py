"""Print job models, tracking and execution."""
