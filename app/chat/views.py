"""
Views for the chat API.

REST endpoints over the ChatClient. Every handler delegates to the
client and unwraps its ServiceResult; failures become the matching
core.exceptions error and are rendered by core.exceptions.api_exception_handler:

    INVALID_ARGUMENT -> 400
    NOT_PARTICIPANT  -> 403
    NOT_FOUND        -> 404
    STORAGE_UNAVAILABLE / TIMEOUT -> 503 / 504

URL Structure:
    /api/v1/chat/users/                      GET
    /api/v1/chat/chats/                      GET, POST
    /api/v1/chat/chats/{id}/                 GET
    /api/v1/chat/chats/{id}/messages/        GET, POST
    /api/v1/chat/chats/{id}/read/            POST
    /api/v1/chat/chats/{id}/typing/          POST
    /api/v1/chat/chats/{id}/images/          POST (multipart)

Live updates are served over WebSockets; see chat.consumers.
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from chat.client import get_chat_client
from chat.constants import MESSAGE_CONFIG
from chat.permissions import IsConversationParticipant
from chat.serializers import (
    ChatCreateSerializer,
    ChatSerializer,
    ImageUploadSerializer,
    MessageCreateSerializer,
    MessagePageSerializer,
    MessageSerializer,
    TypingSerializer,
)
from chat.snapshots import chat_queryset, chat_snapshot, user_chats_snapshot
from identity.serializers import UserSerializer


class UserListView(APIView):
    """
    List users the current user can start a chat with.

    GET /api/v1/chat/users/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_chat_users",
        summary="List users",
        responses={200: UserSerializer(many=True)},
        tags=["Chat - Users"],
    )
    def get(self, request):
        users = get_chat_client().list_users(exclude_user_id=request.user.id)
        return Response(UserSerializer(users, many=True).data)


@extend_schema_view(
    list=extend_schema(
        operation_id="list_chats",
        summary="List chats",
        description="The current user's chats, most recent activity first.",
        responses={200: ChatSerializer(many=True)},
        tags=["Chat - Chats"],
    ),
    create=extend_schema(
        operation_id="resolve_chat",
        summary="Find or create a chat",
        description=(
            "Direct chats are found by their participant pair and created only "
            "if none exists. Group chats are always created."
        ),
        request=ChatCreateSerializer,
        responses={
            201: ChatSerializer,
            400: OpenApiResponse(description="Invalid participants or name"),
            404: OpenApiResponse(description="A participant does not exist"),
        },
        tags=["Chat - Chats"],
    ),
    retrieve=extend_schema(
        operation_id="get_chat",
        summary="Get chat",
        responses={200: ChatSerializer},
        tags=["Chat - Chats"],
    ),
)
class ChatViewSet(viewsets.GenericViewSet):
    """
    ViewSet for chats and their messages.

    list:
        All chats of the current user.

    create:
        Resolve a chat; the current user is always a participant and the creator.

    retrieve:
        One chat with summary, unread map and typing users.

    messages:
        GET pages backward through messages; POST sends one.

    read:
        Mark every message in the chat read by the current user.

    typing:
        Start, refresh or clear the current user's typing state.

    images:
        Upload an image; the returned URL is then sent as a message.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = ChatSerializer

    def get_queryset(self):
        return chat_queryset()

    def get_permissions(self):
        if self.action in ("list", "create"):
            return [IsAuthenticated()]
        return [IsAuthenticated(), IsConversationParticipant()]

    def list(self, request):
        client = get_chat_client()
        return Response(user_chats_snapshot(request.user.id, typing_tracker=client.typing))

    def create(self, request):
        serializer = ChatCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        client = get_chat_client()
        conversation = client.resolve_chat(
            data["participant_ids"],
            is_group=data["is_group"],
            name=data["name"] or None,
            created_by=request.user.id,
        ).unwrap()

        return Response(
            chat_snapshot(conversation.pk, typing_tracker=client.typing),
            status=status.HTTP_201_CREATED,
        )

    def retrieve(self, request, pk=None):
        conversation = self.get_object()
        serializer = ChatSerializer(conversation, context={"typing_tracker": get_chat_client().typing})
        return Response(serializer.data)

    @extend_schema(
        methods=["GET"],
        operation_id="list_messages",
        summary="List messages",
        description="Newest page first; follow next_cursor for older pages.",
        parameters=[
            OpenApiParameter(
                name="page_size",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.QUERY,
                description=f"1-{MESSAGE_CONFIG.MAX_PAGE_SIZE}, default {MESSAGE_CONFIG.DEFAULT_PAGE_SIZE}",
            ),
            OpenApiParameter(
                name="cursor",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description="next_cursor from the previous page",
            ),
        ],
        responses={200: MessagePageSerializer},
        tags=["Chat - Messages"],
    )
    @extend_schema(
        methods=["POST"],
        operation_id="send_message",
        summary="Send message",
        request=MessageCreateSerializer,
        responses={201: MessageSerializer},
        tags=["Chat - Messages"],
    )
    @action(detail=True, methods=["get", "post"])
    def messages(self, request, pk=None):
        conversation = self.get_object()
        client = get_chat_client()

        if request.method == "GET":
            page = client.list_messages(
                conversation.pk,
                page_size=request.query_params.get("page_size", MESSAGE_CONFIG.DEFAULT_PAGE_SIZE),
                cursor=request.query_params.get("cursor"),
            ).unwrap()
            return Response(MessagePageSerializer(page).data)

        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        message = client.send_message(
            conversation.pk,
            request.user.id,
            request.user.display_name,
            text=serializer.validated_data["text"],
            image_url=serializer.validated_data["image_url"] or None,
        ).unwrap()
        return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="mark_chat_read",
        summary="Mark chat as read",
        request=None,
        responses={200: OpenApiResponse(description="{'marked_read': <newly read count>}")},
        tags=["Chat - Chats"],
    )
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        conversation = self.get_object()
        count = get_chat_client().mark_read(conversation.pk, request.user.id).unwrap()
        return Response({"marked_read": count})

    @extend_schema(
        operation_id="set_typing",
        summary="Set typing state",
        request=TypingSerializer,
        responses={204: None},
        tags=["Chat - Chats"],
    )
    @action(detail=True, methods=["post"])
    def typing(self, request, pk=None):
        conversation = self.get_object()
        serializer = TypingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        get_chat_client().set_typing(
            conversation.pk,
            request.user.id,
            serializer.validated_data["is_typing"],
        ).unwrap()
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        operation_id="upload_chat_image",
        summary="Upload image",
        request={"multipart/form-data": ImageUploadSerializer},
        responses={201: OpenApiResponse(description="{'url': <image url>}")},
        tags=["Chat - Messages"],
    )
    @action(
        detail=True,
        methods=["post"],
        parser_classes=[MultiPartParser, FormParser, JSONParser],
    )
    def images(self, request, pk=None):
        conversation = self.get_object()
        serializer = ImageUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        image = serializer.validated_data["image"]

        url = get_chat_client().upload_image(
            conversation.pk,
            image.read(),
            request.user.id,
        ).unwrap()
        return Response({"url": url}, status=status.HTTP_201_CREATED)
