# Device adapters
from .camera import CameraDevice, CaptureAdapter, OpenCVCamera
from .fakes import FakeCamera, FakeProximitySensor, FakeSoundPlayer
from .proximity import ProximityDriver, SensorAdapter, SubscriptionHandle
from .siren import AlarmSoundController, SoundPlayer, TonePlayer
from .tcp_sensor import TCPProximityDriver

__all__ = [
    # Camera
    "CameraDevice",
    "CaptureAdapter",
    "OpenCVCamera",
    # Proximity sensor
    "ProximityDriver",
    "SensorAdapter",
    "SubscriptionHandle",
    "TCPProximityDriver",
    # Siren
    "AlarmSoundController",
    "SoundPlayer",
    "TonePlayer",
    # In-memory doubles
    "FakeCamera",
    "FakeProximitySensor",
    "FakeSoundPlayer",
]
