import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="OrderModel",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("internal_id", models.BigIntegerField(editable=False, null=True, unique=True)),
                ("order_number", models.BigIntegerField(db_index=True)),
                (
                    "payment_method",
                    models.CharField(choices=[("QR", "Qr"), ("CARD", "Card")], max_length=8),
                ),
                ("payment_reference", models.CharField(blank=True, default="", max_length=128)),
                ("full_name", models.CharField(max_length=255)),
                ("address", models.TextField()),
                ("contact", models.CharField(max_length=64)),
                ("lines", models.JSONField(default=list)),
                ("total", models.DecimalField(decimal_places=2, max_digits=12)),
                ("created_at", models.DateTimeField()),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "orders",
                "ordering": ["-internal_id"],
            },
        ),
    ]
