"""
Authz views.
"""
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.identity import identity_for
from apps.authz.serializers import UserProfileSerializer


class CurrentUserView(APIView):
    """
    GET /api/v1/me/ - profile of the authenticated user.

    {
        "id": "uuid",
        "email": "user@example.com",
        "subject_id": "...",
        "is_active": true,
        "roles": ["doctor"]
    }
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        user = request.user
        profile_data = {
            'id': user.id,
            'email': user.email,
            'subject_id': user.subject_id,
            'is_active': user.is_active,
            'roles': sorted(identity_for(request).roles),
        }
        serializer = UserProfileSerializer(profile_data)
        return Response(serializer.data, status=status.HTTP_200_OK)
