# timsread/calibration/__init__.py

from .calibration_model import CalibrationModel

__all__ = ["CalibrationModel"]
