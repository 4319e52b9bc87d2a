from .availability_prober import AvailabilityProber

__all__ = ['AvailabilityProber']
