"""Progress tracking: recording, completion maths, content gates and aggregation."""
