"""
Chat app for real-time messaging between workers and employers.

This app handles:
- Conversations (direct and group) and their participants
- Message sending and history (append-only, newest-first)
- WebSocket real-time delivery (consumers.py, routing.py)
- Read receipts, typing signals and online presence

Delivery paths:
    Realtime: send_message intent over the WebSocket, stored then fanned
        out to every live subscriber of the conversation.
    Fallback: POST /api/v1/chats/<id>/messages/, stored and returned to
        the caller only. Other participants see it on their next fetch.

Usage:
    from chat.services import ConversationService, MessageService

    result = ConversationService.create_conversation(
        creator=user,
        participant_ids=[other_user.id],
    )
    conversation = result.data

    MessageService.send_message(conversation, user, "Is the job still open?")
"""
