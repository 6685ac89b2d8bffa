__title__ = "CryptoTaxSim"
__version__ = "0.3.0"
