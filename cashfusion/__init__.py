__version__ = '0.1.0'

from .fusion import Fusion, FusionStatus, RoundResult, allocate_outputs, gen_components
from .util import FusionError, TransportError, ProtocolViolation, TimingViolation, CryptoError, CovertError
