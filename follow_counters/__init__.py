"""
Denormalized follower/following counters for Firestore follow edges.

`users/{targetUid}/followers/{followerUid}` created -> +1/+1, deleted -> -1/-1,
applied atomically to `users/{targetUid}.followersCount` and
`users/{followerUid}.followingCount`.
"""
