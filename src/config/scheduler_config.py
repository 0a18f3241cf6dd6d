# config/scheduler_config.py

SCHEDULER_CONFIG = {
    "router": {
        "model": {
            "name": "llama-3.3-70b-versatile",
            "temperature": 0.0,
            "max_tokens": 300,
            "retry_count": 2
        }
    },
    "executor": {
        "model": {
            "name": "llama-3.3-70b-versatile",
            "temperature": 0.2,
            "max_tokens": 1500,
            "retry_count": 2
        }
    },
    "decision_engine": {
        # Seconds for one router or executor call, retries included
        "timeout": 25,
        "max_history_messages": 30
    },
    "outbound": {
        "individual_recipient_tag": "individual-recipient",
        "reply_directly_note": "Please reply directly to me only.",
        "message_stream": "outbound"
    },
    "nudge": {
        "first_after_minutes": 24 * 60,
        "second_after_minutes": 48 * 60,
        "escalate_after_minutes": 72 * 60
    },
    "enrichment": {
        "default_location": "Virtual",
        "duration_keywords": {
            "quick": "30 minutes",
            "brief": "30 minutes",
            "short": "30 minutes",
            "standard": "60 minutes",
            "long": "90 minutes"
        }
    }
}
