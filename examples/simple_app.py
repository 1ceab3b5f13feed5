from query_guard import QueryGuardConfig, create_app

config = QueryGuardConfig(guard={"failure_threshold": 3, "block_duration_ms": 30000})

app = create_app(config)

# Run: uvicorn examples.simple_app:app --reload
