def moderation_queue_group(content_type: str) -> str:
    # Channels group name must match ^[A-Za-z0-9._-]+$ and be < 100 chars. Use dot as separator to avoid ':'.
    return f"moderation.queue.{content_type}"
