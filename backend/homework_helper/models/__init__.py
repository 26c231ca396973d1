from homework_helper.models.models import Question, Subject, generate_uuid

__all__ = ["Question", "Subject", "generate_uuid"]
