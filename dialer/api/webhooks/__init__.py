from dialer.api.webhooks import voice, media_stream  # noqa: F401
