"""
Constants
Centralised storage for frame kinds, legacy wire markers and defaults.
"""
# Discriminator values of the tagged frame union
KIND_NATIVE = "native"
KIND_SYMBOLICATED = "symbolicated"
KIND_JS_ASSET = "js_asset"
KIND_SOURCEMAPPED = "sourcemapped"
KIND_JAVA = "java"
KIND_DEOBFUSCATED = "deobfuscated"
KIND_SOURCE = "source"

# Sentinels used by clients that still send array-encoded frames
LEGACY_NATIVE_MARKER = "_RETURN_ADDRESS_"
LEGACY_JS_MARKER = "_JS_ASSET_"
LEGACY_JAVA_MARKER = "_JAVA_"

INCIDENT_KEY_PREFIX = "crashlog:bug"
