from .dead_letter import DeadLetterQueue, create_dead_letter_queue

__all__ = ["DeadLetterQueue", "create_dead_letter_queue"]
