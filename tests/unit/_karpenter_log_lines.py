# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Builders for Karpenter controller log lines as emitted by its zap JSON encoder."""

NODECLAIM = "default-abcde"
NODENAME = "ip-10-0-1-23.us-west-2.compute.internal"
PROVIDER_URI = "aws:///us-west-2a/i-0123456789abcdef0"


def _head(time: str, message: str, controller: str) -> str:
    return (
        f'{{"level":"INFO","time":"{time}","logger":"controller","message":"{message}",'
        f'"commit":"6174c75","controller":"{controller}"'
    )


def created(
    time="2024-10-01T10:00:00.000Z",
    nodeclaim=NODECLAIM,
    nodepool="default",
    instance_types="c4.large, c4.xlarge, c5.large and 55 other(s)",
):
    return (
        _head(time, "created nodeclaim", "provisioner")
        + ',"namespace":"","name":"","reconcileID":"1f7c3a52",'
        f'"NodePool":{{"name":"{nodepool}"}},"NodeClaim":{{"name":"{nodeclaim}"}},'
        '"requests":{"cpu":"1150m","memory":"1304Mi","pods":"5"},'
        f'"instance-types":"{instance_types}"}}'
    )


def launched(
    time="2024-10-01T10:00:02.000Z",
    nodeclaim=NODECLAIM,
    provider_uri=PROVIDER_URI,
    instance_type="c5.large",
    zone="us-west-2a",
    capacity_type="spot",
):
    return (
        _head(time, "launched nodeclaim", "nodeclaim.lifecycle")
        + ',"controllerGroup":"karpenter.sh","controllerKind":"NodeClaim",'
        f'"NodeClaim":{{"name":"{nodeclaim}"}},"namespace":"","name":"{nodeclaim}",'
        f'"reconcileID":"9b1d0e3f","provider-id":"{provider_uri}","instance-type":"{instance_type}",'
        f'"zone":"{zone}","capacity-type":"{capacity_type}",'
        '"allocatable":{"cpu":"1930m","memory":"3055Mi","pods":"29"}}'
    )


def registered(time="2024-10-01T10:00:30.000Z", nodeclaim=NODECLAIM, nodename=NODENAME):
    return (
        _head(time, "registered nodeclaim", "nodeclaim.lifecycle")
        + ',"controllerGroup":"karpenter.sh","controllerKind":"NodeClaim",'
        f'"NodeClaim":{{"name":"{nodeclaim}"}},"namespace":"","name":"{nodeclaim}",'
        f'"reconcileID":"4e2a77c1","provider-id":"{PROVIDER_URI}","Node":{{"name":"{nodename}"}}}}'
    )


def initialized(time="2024-10-01T10:01:00.000Z", nodeclaim=NODECLAIM, nodename=NODENAME):
    return (
        _head(time, "initialized nodeclaim", "nodeclaim.lifecycle")
        + ',"controllerGroup":"karpenter.sh","controllerKind":"NodeClaim",'
        f'"NodeClaim":{{"name":"{nodeclaim}"}},"namespace":"","name":"{nodeclaim}",'
        f'"reconcileID":"a0c4e9d2","provider-id":"{PROVIDER_URI}","Node":{{"name":"{nodename}"}},'
        '"allocatable":{"cpu":"1930m","memory":"3055Mi","pods":"29"}}'
    )


def disrupting(
    time="2024-10-01T12:00:00.000Z",
    nodeclaim=NODECLAIM,
    reason="underutilized",
    decision="delete",
    disrupted=1,
    replacements=0,
    pods=3,
):
    return (
        _head(time, "disrupting node(s)", "disruption")
        + ',"namespace":"","name":"","reconcileID":"77f0b1c8","command-id":"b3d5a1e6",'
        f'"reason":"{reason}","decision":"{decision}","disrupted-node-count":{disrupted},'
        f'"replacement-node-count":{replacements},"pod-count":{pods},'
        f'"disrupted-nodes":[{{"Node":{{"name":"{NODENAME}"}},"NodeClaim":{{"name":"{nodeclaim}"}},'
        '"capacity-type":"spot","instance-type":"c5.large"}],"replacement-nodes":[]}'
    )


def interruption(time="2024-10-01T11:00:00.000Z", nodeclaim=NODECLAIM, kind="SpotInterruptionKind"):
    return (
        _head(time, "initiating delete from interruption message", "interruption")
        + ',"namespace":"","name":"","reconcileID":"c81e2f40","queue":"karpenter-interruptions",'
        f'"messageKind":"{kind}","NodeClaim":{{"name":"{nodeclaim}"}},"action":"CordonAndDrain",'
        f'"Node":{{"name":"{NODENAME}"}}}}'
    )


def annotated(
    time="2024-10-01T12:00:05.000Z",
    nodeclaim=NODECLAIM,
    key="karpenter.sh/nodeclaim-termination-timestamp",
    value="2024-10-01T12:30:05Z",
):
    return (
        _head(time, "annotated nodeclaim", "nodeclaim.disruption")
        + ',"controllerGroup":"karpenter.sh","controllerKind":"NodeClaim",'
        f'"NodeClaim":{{"name":"{nodeclaim}"}},"namespace":"","name":"{nodeclaim}",'
        f'"reconcileID":"5d9a3b72","{key}":"{value}"}}'
    )


def tainted_v11(
    time="2024-10-01T12:00:06.000Z",
    nodeclaim=NODECLAIM,
    key="karpenter.sh/disrupted",
    value="",
    effect="NoSchedule",
):
    return (
        _head(time, "tainted node", "node.termination")
        + ',"controllerGroup":"","controllerKind":"Node",'
        f'"Node":{{"name":"{NODENAME}"}},"namespace":"","name":"{NODENAME}","reconcileID":"e6f1c2a9",'
        f'"NodeClaim":{{"name":"{nodeclaim}"}},"taint.Key":"{key}","taint.Value":"{value}",'
        f'"taint.Effect":"{effect}"}}'
    )


def tainted_v10(
    time="2024-10-01T12:00:06.000Z",
    nodename=NODENAME,
    key="karpenter.sh/disrupted",
    value="",
    effect="NoSchedule",
):
    return (
        _head(time, "tainted node", "node.termination")
        + ',"controllerGroup":"","controllerKind":"Node",'
        f'"Node":{{"name":"{nodename}"}},"namespace":"","name":"{nodename}","reconcileID":"e6f1c2a9",'
        f'"taint.Key":"{key}","taint.Value":"{value}","taint.Effect":"{effect}"}}'
    )


def tainted_v037(time="2024-10-01T12:00:06.000Z", nodename=NODENAME):
    return (
        _head(time, "tainted node", "node.termination")
        + f',"Node":{{"name":"{nodename}"}},"namespace":"","name":"{nodename}","reconcileID":"e6f1c2a9"}}'
    )


def deleted(time="2024-10-01T12:10:05.000Z", nodeclaim=NODECLAIM):
    return (
        _head(time, "deleted nodeclaim", "nodeclaim.termination")
        + ',"controllerGroup":"karpenter.sh","controllerKind":"NodeClaim",'
        f'"NodeClaim":{{"name":"{nodeclaim}"}},"namespace":"","name":"{nodeclaim}",'
        f'"reconcileID":"f2b8d4e1","Node":{{"name":"{NODENAME}"}},"provider-id":"{PROVIDER_URI}"}}'
    )


def unrelated(time="2024-10-01T10:00:01.000Z"):
    return (
        _head(time, "found provisionable pod(s)", "provisioner")
        + ',"namespace":"","name":"","reconcileID":"1f7c3a52","Pods":"default/inflate-1","duration":"12.3ms"}'
    )


def lifecycle(nodeclaim=NODECLAIM, nodename=NODENAME):
    """Full lifecycle of one nodeclaim in log order."""
    return [
        created(nodeclaim=nodeclaim),
        unrelated(),
        launched(nodeclaim=nodeclaim),
        registered(nodeclaim=nodeclaim, nodename=nodename),
        initialized(nodeclaim=nodeclaim, nodename=nodename),
        disrupting(nodeclaim=nodeclaim),
        annotated(nodeclaim=nodeclaim),
        tainted_v11(nodeclaim=nodeclaim),
        deleted(nodeclaim=nodeclaim),
    ]
