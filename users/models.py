import uuid

from django.contrib.auth.models import AbstractBaseUser, BaseUserManager
from django.db import models


class UserManager(BaseUserManager):
    def create_user(self, **extra_fields):
        user = self.model(**extra_fields)
        user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_moderator(self, **extra_fields):
        extra_fields.setdefault("is_moderator", True)
        return self.create_user(**extra_fields)


class User(AbstractBaseUser):
    # 계정/세션 관리는 외부 서비스 소관. 여기서는 JWT 의 user_id 와 모더레이터 권한만 다룬다.
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    is_moderator = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    last_active = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = "id"
    REQUIRED_FIELDS = []

    class Meta:
        db_table = "users"

    def __str__(self):
        return str(self.id)
