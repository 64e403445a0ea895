import typing

UserId = typing.NewType("UserId", str)
AdminId = typing.NewType("AdminId", str)
AccessTokenId = typing.NewType("AccessTokenId", str)
SessionId = typing.NewType("SessionId", str)

PermissionId = typing.NewType("PermissionId", str)
PengadaanId = typing.NewType("PengadaanId", str)
IsoTimestamp = typing.NewType("IsoTimestamp", str)
