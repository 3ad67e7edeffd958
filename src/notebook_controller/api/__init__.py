"""HTTP API served next to the operator."""
