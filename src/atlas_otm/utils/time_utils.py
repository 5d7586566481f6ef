from atlas_otm.models.progress import Eta


def coarsen_eta(seconds: float) -> Eta:
    """Express a duration in seconds, minutes or hours, rounded down"""
    seconds = max(0.0, seconds)
    if seconds < 60:
        return Eta(int(seconds), "seconds")
    if seconds < 3600:
        return Eta(int(seconds // 60), "minutes")
    return Eta(int(seconds // 3600), "hours")


def estimate_remaining(elapsed: float, processed: int, total: int) -> float:
    """(elapsed / processed) * (total - processed)"""
    if processed <= 0:
        return 0.0
    return elapsed / processed * (total - processed)
