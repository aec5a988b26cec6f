"""
Email package.

Modules:
- core: send_email through the Brevo transactional API
- client: EmailClient for queueing emails via the Communications Service API

Templates live in services/communications_service/templates/.
"""
