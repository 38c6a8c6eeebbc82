"""Statement Dispatch Service

Answers WhatsApp messages with the sender's latest account statement:
- Receives inbound messages from the WhatsApp gateway
- Matches the sender's number to a customer record
- Checks the latest statement for that customer's section
- Renders the PDF and sends it back as a document
- Keeps an audit record of every request
"""

__version__ = "1.0.0"
