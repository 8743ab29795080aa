"""Core domain package for pastescope.

Core contains rules, matching, deduplication, and the polling loop without any
HTTP, Telegram, or SMTP-specific code, keeping the business logic portable.
"""
