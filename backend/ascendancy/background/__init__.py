from ascendancy.background.cleanup import otp_cleanup_task

__all__ = ["otp_cleanup_task"]
