from rest_framework import serializers
from .models import Command, MediaFile, Task

# Options each command understands; anything else is rejected.
ALLOWED_OPTIONS = {
    Command.TRANSCRIBE: {"language", "format"},
    Command.SLOWMOTION: {"speed"},
    Command.FPSBOOST: {"factor"},
    Command.SUBTITLE: {"language", "format"},
}
NUMERIC_OPTIONS = {"speed", "factor"}


class TaskSerializer(serializers.ModelSerializer):
    file_ids = serializers.SerializerMethodField()

    class Meta:
        model = Task
        fields = [
            "id",
            "command",
            "options",
            "status",
            "progress",
            "result_path",
            "error",
            "file_ids",
            "created_at",
            "updated_at",
        ]

    def get_file_ids(self, task):
        return [str(link.file_id) for link in task.task_files.all()]


class TaskCreateSerializer(serializers.Serializer):
    file_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    command = serializers.ChoiceField(choices=Command.choices)
    options = serializers.DictField(required=False, default=dict)

    def validate_file_ids(self, value):
        """
        All files must exist. Order is kept (the first file is the one processed);
        duplicates are dropped.
        """
        deduped = list(dict.fromkeys(value))
        found = set(MediaFile.objects.filter(pk__in=deduped).values_list("pk", flat=True))
        missing = [str(f) for f in deduped if f not in found]
        if missing:
            raise serializers.ValidationError(f"Unknown file ids: {missing}")
        return deduped

    def validate(self, attrs):
        command = attrs["command"]
        options = attrs.get("options") or {}
        unknown = sorted(set(options) - ALLOWED_OPTIONS[command])
        if unknown:
            raise serializers.ValidationError(
                {"options": f"Unsupported options for {command}: {unknown}. Allowed: {sorted(ALLOWED_OPTIONS[command])}"}
            )
        for name in NUMERIC_OPTIONS & set(options):
            value = options[name]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise serializers.ValidationError({"options": f"{name} must be a positive number"})
        for name in {"language", "format"} & set(options):
            value = options[name]
            if not isinstance(value, str) or not value.isalnum():
                raise serializers.ValidationError({"options": f"{name} must be a short alphanumeric code"})
        attrs["options"] = options
        return attrs
