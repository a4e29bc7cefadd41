from talenthub.models.channel import Channel
from talenthub.models.conversation import ChannelConversation, Conversation, ConversationMember, DirectConversation
from talenthub.models.friend import FriendRequest
from talenthub.models.message import Message
from talenthub.models.portfolio import Portfolio
from talenthub.models.server import Server, ServerBan, ServerMember
from talenthub.models.user import PendingVerification, User

__all__ = [
    "User",
    "PendingVerification",
    "Server",
    "ServerMember",
    "ServerBan",
    "Channel",
    "Conversation",
    "ChannelConversation",
    "DirectConversation",
    "ConversationMember",
    "Message",
    "FriendRequest",
    "Portfolio",
]
