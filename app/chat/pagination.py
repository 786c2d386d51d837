"""
Pagination classes for chat API.

- MessageCursorPagination: message history, newest first

Cursor-based pagination keeps pages stable while new messages are being
appended at the head of the list. The cursor encodes the message sequence
number, which is unique per conversation.
"""

from rest_framework.pagination import CursorPagination
from rest_framework.response import Response

from chat.constants import MESSAGE_CONFIG


class MessageCursorPagination(CursorPagination):
    """
    Cursor pagination for message lists.

    Default: 50 messages per page
    Maximum: 100 messages per page

    Query parameters:
        cursor: Encoded cursor for position
        page_size: Number of messages (optional override)

    Response:
        {"success": true, "data": {"next": url, "previous": url, "results": [...]}}
    """

    page_size = MESSAGE_CONFIG.DEFAULT_PAGE_SIZE
    max_page_size = MESSAGE_CONFIG.MAX_PAGE_SIZE
    page_size_query_param = "page_size"
    ordering = "-sequence"
    cursor_query_param = "cursor"

    def get_paginated_response(self, data):
        return Response(
            {
                "success": True,
                "data": {
                    "next": self.get_next_link(),
                    "previous": self.get_previous_link(),
                    "results": data,
                },
            }
        )

    def get_paginated_response_schema(self, schema):
        return {
            "type": "object",
            "properties": {
                "success": {"type": "boolean"},
                "data": super().get_paginated_response_schema(schema),
            },
        }
