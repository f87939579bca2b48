# -*- coding: utf-8 -*-
# Generated by the protocol buffer compiler.  DO NOT EDIT!
# source: fusion.proto
"""Generated protocol buffer code."""
from google.protobuf.internal import builder as _builder
from google.protobuf import descriptor as _descriptor
from google.protobuf import descriptor_pool as _descriptor_pool
from google.protobuf import symbol_database as _symbol_database
# @@protoc_insertion_point(imports)

_sym_db = _symbol_database.Default()




DESCRIPTOR = _descriptor_pool.Default().AddSerializedFile(b'\n\x0c\x66usion.proto\x12\x06\x66usion\"W\n\x0eInputComponent\x12\x11\n\tprev_txid\x18\x01 \x02(\x0c\x12\x12\n\nprev_index\x18\x02 \x02(\r\x12\x0e\n\x06pubkey\x18\x03 \x02(\x0c\x12\x0e\n\x06\x61mount\x18\x04 \x02(\x04\"7\n\x0fOutputComponent\x12\x14\n\x0cscriptpubkey\x18\x01 \x02(\x0c\x12\x0e\n\x06\x61mount\x18\x02 \x02(\x04\"\x10\n\x0e\x42lankComponent\"\xae\x01\n\tComponent\x12\x17\n\x0fsalt_commitment\x18\x01 \x02(\x0c\x12\'\n\x05input\x18\x02 \x01(\x0b\x32\x16.fusion.InputComponentH\x00\x12)\n\x06output\x18\x03 \x01(\x0b\x32\x17.fusion.OutputComponentH\x00\x12\'\n\x05\x62lank\x18\x04 \x01(\x0b\x32\x16.fusion.BlankComponentH\x00\x42\x0b\n\tcomponent\"h\n\x11InitialCommitment\x12\x1d\n\x15salted_component_hash\x18\x01 \x02(\x0c\x12\x19\n\x11\x61mount_commitment\x18\x02 \x02(\x0c\x12\x19\n\x11\x63ommunication_key\x18\x03 \x02(\x0c\"4\n\x0b\x43lientHello\x12\x0f\n\x07version\x18\x01 \x02(\x0c\x12\x14\n\x0cgenesis_hash\x18\x02 \x01(\x0c\"\x99\x01\n\x0bServerHello\x12\r\n\x05tiers\x18\x01 \x03(\x04\x12\x16\n\x0enum_components\x18\x02 \x02(\r\x12\x19\n\x11\x63omponent_feerate\x18\x04 \x02(\x04\x12\x16\n\x0emin_excess_fee\x18\x05 \x02(\x04\x12\x16\n\x0emax_excess_fee\x18\x06 \x02(\x04\x12\x18\n\x10\x64onation_address\x18\x0f \x01(\t\"x\n\tJoinPools\x12\r\n\x05tiers\x18\x01 \x03(\x04\x12\'\n\x04tags\x18\x02 \x03(\x0b\x32\x19.fusion.JoinPools.PoolTag\x1a\x33\n\x07PoolTag\x12\n\n\x02id\x18\x01 \x02(\x0c\x12\r\n\x05limit\x18\x02 \x02(\r\x12\r\n\x05no_ip\x18\x03 \x01(\x08\"\x83\x02\n\x10TierStatusUpdate\x12\x38\n\x08statuses\x18\x01 \x03(\x0b\x32&.fusion.TierStatusUpdate.StatusesEntry\x1a_\n\nTierStatus\x12\x0f\n\x07players\x18\x01 \x01(\r\x12\x13\n\x0bmin_players\x18\x02 \x01(\r\x12\x13\n\x0bmax_players\x18\x03 \x01(\r\x12\x16\n\x0etime_remaining\x18\x04 \x01(\r\x1aT\n\rStatusesEntry\x12\x0b\n\x03key\x18\x01 \x01(\x04\x12\x32\n\x05value\x18\x02 \x01(\x0b\x32#.fusion.TierStatusUpdate.TierStatus:\x02\x38\x01\"p\n\x0b\x46usionBegin\x12\x0c\n\x04tier\x18\x01 \x02(\x04\x12\x15\n\rcovert_domain\x18\x02 \x02(\x0c\x12\x13\n\x0b\x63overt_port\x18\x03 \x02(\r\x12\x12\n\ncovert_ssl\x18\x04 \x01(\x08\x12\x13\n\x0bserver_time\x18\x05 \x02(\x06\"S\n\nStartRound\x12\x14\n\x0cround_pubkey\x18\x01 \x02(\x0c\x12\x1a\n\x12\x62lind_nonce_points\x18\x02 \x03(\x0c\x12\x13\n\x0bserver_time\x18\x05 \x02(\x06\"\x9b\x01\n\x0cPlayerCommit\x12\x1b\n\x13initial_commitments\x18\x01 \x03(\x0c\x12\x12\n\nexcess_fee\x18\x02 \x02(\x04\x12\x1c\n\x14pedersen_total_nonce\x18\x03 \x02(\x0c\x12 \n\x18random_number_commitment\x18\x04 \x02(\x0c\x12\x1a\n\x12\x62lind_sig_requests\x18\x05 \x03(\x0c\"$\n\x11\x42lindSigResponses\x12\x0f\n\x07scalars\x18\x01 \x03(\x0c\"-\n\x0e\x41llCommitments\x12\x1b\n\x13initial_commitments\x18\x01 \x03(\x0c\"M\n\x0f\x43overtComponent\x12\x14\n\x0cround_pubkey\x18\x01 \x01(\x0c\x12\x11\n\tsignature\x18\x02 \x02(\x0c\x12\x11\n\tcomponent\x18\x03 \x02(\x0c\"Z\n\x15ShareCovertComponents\x12\x12\n\ncomponents\x18\x04 \x03(\x0c\x12\x17\n\x0fskip_signatures\x18\x05 \x01(\x08\x12\x14\n\x0csession_hash\x18\x06 \x01(\x0c\"\\\n\x1a\x43overtTransactionSignature\x12\x14\n\x0cround_pubkey\x18\x01 \x01(\x0c\x12\x13\n\x0bwhich_input\x18\x02 \x02(\r\x12\x13\n\x0btxsignature\x18\x03 \x02(\x0c\"H\n\x0c\x46usionResult\x12\n\n\x02ok\x18\x01 \x02(\x08\x12\x14\n\x0ctxsignatures\x18\x02 \x03(\x0c\x12\x16\n\x0e\x62\x61\x64_components\x18\x03 \x03(\r\"\x0e\n\x0cRestartRound\"\x18\n\x05\x45rror\x12\x0f\n\x07message\x18\x01 \x01(\t\"\x06\n\x04Ping\"\x04\n\x02OK\"\x98\x01\n\rClientMessage\x12*\n\x0b\x63lienthello\x18\x01 \x01(\x0b\x32\x13.fusion.ClientHelloH\x00\x12&\n\tjoinpools\x18\x02 \x01(\x0b\x32\x11.fusion.JoinPoolsH\x00\x12,\n\x0cplayercommit\x18\x03 \x01(\x0b\x32\x14.fusion.PlayerCommitH\x00\x42\x05\n\x03msg\"\xf4\x03\n\rServerMessage\x12*\n\x0bserverhello\x18\x01 \x01(\x0b\x32\x13.fusion.ServerHelloH\x00\x12\x34\n\x10tierstatusupdate\x18\x02 \x01(\x0b\x32\x18.fusion.TierStatusUpdateH\x00\x12*\n\x0b\x66usionbegin\x18\x03 \x01(\x0b\x32\x13.fusion.FusionBeginH\x00\x12(\n\nstartround\x18\x04 \x01(\x0b\x32\x12.fusion.StartRoundH\x00\x12\x36\n\x11\x62lindsigresponses\x18\x05 \x01(\x0b\x32\x19.fusion.BlindSigResponsesH\x00\x12\x30\n\x0e\x61llcommitments\x18\x06 \x01(\x0b\x32\x16.fusion.AllCommitmentsH\x00\x12>\n\x15sharecovertcomponents\x18\x07 \x01(\x0b\x32\x1d.fusion.ShareCovertComponentsH\x00\x12,\n\x0c\x66usionresult\x18\x08 \x01(\x0b\x32\x14.fusion.FusionResultH\x00\x12,\n\x0crestartround\x18\x0e \x01(\x0b\x32\x14.fusion.RestartRoundH\x00\x12\x1e\n\x05\x65rror\x18\x0f \x01(\x0b\x32\r.fusion.ErrorH\x00\x42\x05\n\x03msg\"\x9b\x01\n\rCovertMessage\x12,\n\tcomponent\x18\x01 \x01(\x0b\x32\x17.fusion.CovertComponentH\x00\x12\x37\n\tsignature\x18\x02 \x01(\x0b\x32\".fusion.CovertTransactionSignatureH\x00\x12\x1c\n\x04ping\x18\x03 \x01(\x0b\x32\x0c.fusion.PingH\x00\x42\x05\n\x03msg\"Q\n\x0e\x43overtResponse\x12\x18\n\x02ok\x18\x01 \x01(\x0b\x32\n.fusion.OKH\x00\x12\x1e\n\x05\x65rror\x18\x0f \x01(\x0b\x32\r.fusion.ErrorH\x00\x42\x05\n\x03msg')

_builder.BuildMessageAndEnumDescriptors(DESCRIPTOR, globals())
_builder.BuildTopDescriptorsAndMessages(DESCRIPTOR, 'fusion_pb2', globals())
if _descriptor._USE_C_DESCRIPTORS == False:

  DESCRIPTOR._options = None
  _TIERSTATUSUPDATE_STATUSESENTRY._options = None
  _TIERSTATUSUPDATE_STATUSESENTRY._serialized_options = b'8\001'
  _INPUTCOMPONENT._serialized_start=24
  _INPUTCOMPONENT._serialized_end=111
  _OUTPUTCOMPONENT._serialized_start=113
  _OUTPUTCOMPONENT._serialized_end=168
  _BLANKCOMPONENT._serialized_start=170
  _BLANKCOMPONENT._serialized_end=186
  _COMPONENT._serialized_start=189
  _COMPONENT._serialized_end=363
  _INITIALCOMMITMENT._serialized_start=365
  _INITIALCOMMITMENT._serialized_end=469
  _CLIENTHELLO._serialized_start=471
  _CLIENTHELLO._serialized_end=523
  _SERVERHELLO._serialized_start=526
  _SERVERHELLO._serialized_end=679
  _JOINPOOLS._serialized_start=681
  _JOINPOOLS._serialized_end=801
  _JOINPOOLS_POOLTAG._serialized_start=750
  _JOINPOOLS_POOLTAG._serialized_end=801
  _TIERSTATUSUPDATE._serialized_start=804
  _TIERSTATUSUPDATE._serialized_end=1063
  _TIERSTATUSUPDATE_TIERSTATUS._serialized_start=882
  _TIERSTATUSUPDATE_TIERSTATUS._serialized_end=977
  _TIERSTATUSUPDATE_STATUSESENTRY._serialized_start=979
  _TIERSTATUSUPDATE_STATUSESENTRY._serialized_end=1063
  _FUSIONBEGIN._serialized_start=1065
  _FUSIONBEGIN._serialized_end=1177
  _STARTROUND._serialized_start=1179
  _STARTROUND._serialized_end=1262
  _PLAYERCOMMIT._serialized_start=1265
  _PLAYERCOMMIT._serialized_end=1420
  _BLINDSIGRESPONSES._serialized_start=1422
  _BLINDSIGRESPONSES._serialized_end=1458
  _ALLCOMMITMENTS._serialized_start=1460
  _ALLCOMMITMENTS._serialized_end=1505
  _COVERTCOMPONENT._serialized_start=1507
  _COVERTCOMPONENT._serialized_end=1584
  _SHARECOVERTCOMPONENTS._serialized_start=1586
  _SHARECOVERTCOMPONENTS._serialized_end=1676
  _COVERTTRANSACTIONSIGNATURE._serialized_start=1678
  _COVERTTRANSACTIONSIGNATURE._serialized_end=1770
  _FUSIONRESULT._serialized_start=1772
  _FUSIONRESULT._serialized_end=1844
  _RESTARTROUND._serialized_start=1846
  _RESTARTROUND._serialized_end=1860
  _ERROR._serialized_start=1862
  _ERROR._serialized_end=1886
  _PING._serialized_start=1888
  _PING._serialized_end=1894
  _OK._serialized_start=1896
  _OK._serialized_end=1900
  _CLIENTMESSAGE._serialized_start=1903
  _CLIENTMESSAGE._serialized_end=2055
  _SERVERMESSAGE._serialized_start=2058
  _SERVERMESSAGE._serialized_end=2558
  _COVERTMESSAGE._serialized_start=2561
  _COVERTMESSAGE._serialized_end=2716
  _COVERTRESPONSE._serialized_start=2718
  _COVERTRESPONSE._serialized_end=2799
# @@protoc_insertion_point(module_scope)
