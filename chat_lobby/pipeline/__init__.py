"""Pure transformations from raw backend records to display-ready lists."""
