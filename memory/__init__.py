HISTORY_STORES = {
    "InMemoryHistoryStore": "memory.inmemory_impl",
    "RedisHistoryStore": "memory.redis_impl",
}

MESSAGE_STORES = {
    "ChatLogSQLAlchemy": "memory.chat_log_sqlalchemy",
}
