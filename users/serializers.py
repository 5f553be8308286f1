from rest_framework import serializers
from .models import User


class UserSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='profile.username', read_only=True, default=None)
    full_name = serializers.CharField(source='profile.full_name', read_only=True, default="")
    avatar_url = serializers.CharField(source='profile.avatar_url', read_only=True, default=None)

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'username',
            'full_name',
            'avatar_url',
            'date_joined',
        ]
