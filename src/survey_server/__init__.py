"""survey_server — FastAPI service for the WhatsApp survey bot.

Receives WhatsApp Cloud API webhooks, drives the survey engine, and exposes
read-only dashboard endpoints plus bot control and external check retry.
"""
